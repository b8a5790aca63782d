"""Installation option types, SELinux state and provisioning metadata."""

from __future__ import annotations

import enum
import json
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone

from bootc.hostns import run_in_host_mountns

_SKOPEO_PREFIX = "skopeo version "
_UNSIGNED = re.compile(r"\+?[0-9]+")


class ReplaceMode(enum.Enum):
    """How existing data on the target filesystem is treated."""

    # Completely wipe the contents of the target filesystem.
    WIPE = "wipe"
    # Replace the bootloader state; the running system stays until reboot.
    ALONGSIDE = "alongside"

    def __str__(self) -> str:
        return self.value


class SELinuxFinalState(enum.Enum):
    """The SELinux state of the target system after installation."""

    FORCE_TARGET_DISABLED = "force-target-disabled"
    ENABLED = "enabled"
    HOST_DISABLED = "host-disabled"
    DISABLED = "disabled"

    def enabled(self) -> bool:
        """Whether the target system will have SELinux enabled."""
        return self in (SELinuxFinalState.ENABLED, SELinuxFinalState.HOST_DISABLED)

    def to_aleph(self) -> str:
        """The canonical string form, used for debugging."""
        return self.value


def _format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    base = ts.strftime("%Y-%m-%dT%H:%M:%S")
    micro = ts.microsecond
    if micro == 0:
        frac = ""
    elif micro % 1000 == 0:
        frac = f".{micro // 1000:03d}"
    else:
        frac = f".{micro:06d}"
    return f"{base}{frac}Z"


@dataclass
class InstallAleph:
    """Version information recorded at install time in ``.bootc-aleph.json``."""

    image: str
    kernel: str
    selinux: str
    version: str | None = None
    timestamp: datetime | None = None

    def to_json(self) -> str:
        data = {
            "image": self.image,
            "version": self.version,
            "timestamp": None if self.timestamp is None else _format_timestamp(self.timestamp),
            "kernel": self.kernel,
            "selinux": self.selinux,
        }
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _parse_unsigned(s: str) -> int:
    if not _UNSIGNED.fullmatch(s):
        raise ValueError(f"invalid version number: {s!r}")
    return int(s)


def check_skopeo_version(output: str) -> tuple[int, int]:
    """Parse ``skopeo --version`` output; require at least 1.11.

    Returns the (major, minor) version.
    """
    if not output.startswith(_SKOPEO_PREFIX):
        raise ValueError("Unexpected output from skopeo version")
    fields = output[len(_SKOPEO_PREFIX):].split(".")
    major = fields[0]
    if len(fields) < 2:
        raise ValueError("Missing minor version")
    minor = fields[1]
    version = (_parse_unsigned(major), _parse_unsigned(minor))
    if not (version[0] > 1 or version[1] > 10):
        raise RuntimeError("skopeo >= 1.11 is required on host")
    return version


def require_skopeo_with_containers_storage() -> None:
    """Verify that a recent enough skopeo is available in the host root."""
    argv = [*run_in_host_mountns("skopeo"), "--version"]
    failure = "Failed to run skopeo (it currently must be installed in the host root)"
    try:
        result = subprocess.run(argv, stdout=subprocess.PIPE, text=True)
    except OSError as e:
        raise RuntimeError(f"Querying skopeo version: {failure}: {e}") from e
    if result.returncode != 0:
        raise RuntimeError(
            f"Querying skopeo version: {failure}: exit status {result.returncode}"
        )
    try:
        check_skopeo_version(result.stdout)
    except (ValueError, RuntimeError) as e:
        raise RuntimeError(f"Querying skopeo version: {e}") from e