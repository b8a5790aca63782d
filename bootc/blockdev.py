"""Block device discovery and manipulation via lsblk, losetup and friends."""

from __future__ import annotations

import errno
import fcntl
import json
import logging
import os
import re
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import IO, Any

from bootc.hostns import run_in_host_mountns

log = logging.getLogger(__name__)

# BLKRRPART: _IO(0x12, 95)
_BLKRRPART = (0x12 << 8) | 95

_LSBLK_PAIR = re.compile(r'([A-Z_-]+)="([^"]+)"')
_UNSIGNED = re.compile(r"\+?[0-9]+")

_SIZE_SUFFIXES = (
    ("MiB", 1),
    ("M", 1),
    ("GiB", 1024),
    ("G", 1024),
    ("TiB", 1024 * 1024),
    ("T", 1024 * 1024),
)


def _command_error(description: str, argv: Sequence[str], result: subprocess.CompletedProcess) -> RuntimeError:
    detail = f"exit status {result.returncode}"
    stderr = (result.stderr or "").strip() if isinstance(result.stderr, str) else ""
    if stderr:
        detail += f": {stderr}"
    return RuntimeError(f"Task {description} failed: {detail}")


def _run(description: str, argv: Sequence[str], *, quiet: bool = False) -> None:
    if not quiet:
        print(description, flush=True)
    try:
        result = subprocess.run(list(argv))
    except OSError as e:
        raise RuntimeError(f"Task {description} failed: {e}") from e
    if result.returncode != 0:
        raise _command_error(description, argv, result)


def _read(description: str, argv: Sequence[str]) -> str:
    try:
        result = subprocess.run(list(argv), stdout=subprocess.PIPE, text=True)
    except OSError as e:
        raise RuntimeError(f"Task {description} failed: {e}") from e
    if result.returncode != 0:
        raise _command_error(description, argv, result)
    return result.stdout


@dataclass
class Device:
    """A block device as reported by ``lsblk``."""

    name: str
    serial: str | None = None
    model: str | None = None
    label: str | None = None
    fstype: str | None = None
    children: list[Device] | None = field(default=None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Device:
        """Build a device (and its children) from lsblk JSON output."""
        children = data.get("children")
        return cls(
            name=data["name"],
            serial=data.get("serial"),
            model=data.get("model"),
            label=data.get("label"),
            fstype=data.get("fstype"),
            children=None if children is None else [cls.from_dict(c) for c in children],
        )

    def path(self) -> str:
        """The device node path (older lsblk lacks a PATH column)."""
        return f"/dev/{self.name}"

    def has_children(self) -> bool:
        return bool(self.children)


def wipefs(dev: str | os.PathLike[str]) -> None:
    """Erase all filesystem signatures on ``dev``."""
    dev = os.fspath(dev)
    try:
        _run(f"Wiping device {dev}", ["wipefs", "-a", dev])
    except RuntimeError as e:
        raise RuntimeError(f"Failed to wipe {dev}: {e}") from e


def _list_impl(dev: str | None) -> list[Device]:
    argv = ["lsblk", "-J", "-o", "NAME,SERIAL,MODEL,LABEL,FSTYPE"]
    if dev is not None:
        argv.append(dev)
    result = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    if result.returncode != 0:
        raise RuntimeError("Failed to list block devices")
    data = json.loads(result.stdout)
    return [Device.from_dict(d) for d in data["blockdevices"]]


def list_dev(dev: str | os.PathLike[str]) -> Device:
    """Return the lsblk description of a single device."""
    dev = os.fspath(dev)
    try:
        devices = _list_impl(dev)
    except (RuntimeError, ValueError, KeyError) as e:
        raise RuntimeError(f"Listing device {dev}: {e}") from e
    if not devices:
        raise RuntimeError(f"Listing device {dev}: no device output from lsblk for {dev}")
    return devices[0]


def list_devices() -> list[Device]:
    """Return all block devices known to lsblk."""
    return _list_impl(None)


class LoopbackDevice:
    """A loopback block device backed by a file; usable as a context manager."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.dev: str | None = None
        direct_io = "on" if os.environ.get("BOOTC_DIRECT_IO") == "on" else "off"
        out = _read(
            "losetup",
            ["losetup", "--show", f"--direct-io={direct_io}", "-P", "--find", os.fspath(path)],
        )
        self.dev = out.strip()
        log.debug("Allocated loopback %s", self.dev)

    def path(self) -> str:
        """The path to the loopback block device."""
        if self.dev is None:
            raise RuntimeError("loopback device already deallocated")
        return self.dev

    def close(self) -> None:
        """Release the loopback device; calling again does nothing."""
        dev, self.dev = self.dev, None
        if dev is None:
            log.debug("loopback device already deallocated")
            return
        _run("losetup", ["losetup", "-d", dev], quiet=True)

    def __enter__(self) -> LoopbackDevice:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __del__(self) -> None:
        # Best effort if never closed explicitly
        if getattr(self, "dev", None) is not None:
            try:
                self.close()
            except Exception:
                pass


def udev_settle() -> None:
    """Wait for udev to process pending events."""
    # udevd may not have received the kernel's updates yet after a
    # partition table reread; give it a moment.
    time.sleep(0.2)
    argv = [*run_in_host_mountns("udevadm"), "settle"]
    result = subprocess.run(argv)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to run udevadm settle: exit status {result.returncode}")


def reread_partition_table(file: IO[Any], retry: bool) -> None:
    """Ask the kernel to reread the partition table of an open block device."""
    fd = file.fileno()
    max_tries = 20 if retry else 1
    for remaining in reversed(range(max_tries)):
        try:
            fcntl.ioctl(fd, _BLKRRPART)
            return
        except OSError as e:
            if remaining > 0:
                time.sleep(0.1)
                continue
            if e.errno == errno.EINVAL:
                msg = "couldn't reread partition table: device may not support partitions"
            elif e.errno == errno.EBUSY:
                msg = "couldn't reread partition table: device is in use"
            else:
                msg = "couldn't reread partition table"
            raise RuntimeError(f"{msg}: {e}") from e


def split_lsblk_line(line: str) -> dict[str, str]:
    """Parse the ``KEY="value"`` pairs printed by ``lsblk --pairs``."""
    return {m.group(1): m.group(2) for m in _LSBLK_PAIR.finditer(line)}


def find_parent_devices(device: str) -> list[str]:
    """Return every device above ``device`` able to hold partitions (disk, loop, mpath)."""
    output = _read(
        "lsblk",
        ["lsblk", "--pairs", "--paths", "--inverse", "--output", "NAME,TYPE", device],
    )
    parents: list[str] = []
    # The first line is the device itself
    for line in output.splitlines()[1:]:
        fields = split_lsblk_line(line)
        name = fields.get("NAME")
        if name is None:
            raise ValueError(f"device in hierarchy of {device} missing NAME")
        kind = fields.get("TYPE")
        if kind is None:
            raise ValueError(f"device in hierarchy of {device} missing TYPE")
        if kind in ("disk", "loop"):
            parents.append(name)
        elif kind == "mpath":
            parents.append(name)
            # The disks backing the multipath are not needed
            break
    return parents


def parse_size_mib(s: str) -> int:
    """Parse a size such as ``10G`` or ``512MiB`` into mebibytes."""
    mul = 1
    for suffix, imul in _SIZE_SUFFIXES:
        head, sep, rest = s.rpartition(suffix)
        if sep:
            if rest:
                raise ValueError(f"Trailing text after size: {rest}")
            s = head
            mul = imul
    if not _UNSIGNED.fullmatch(s):
        raise ValueError(f"invalid size: {s!r}")
    return int(s) * mul