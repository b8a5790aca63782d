"""Mount specifications and root filesystem kernel arguments."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

AUTO = "auto"
ROOTFLAGS = "rootflags="
INITRD_ARG_PREFIX = "rd."


@dataclass
class MountSpec:
    """A subset of an ``/etc/fstab`` line: ``SOURCE TARGET [FSTYPE [OPTIONS]]``."""

    source: str
    target: str
    fstype: str = AUTO
    options: str | None = None

    @classmethod
    def parse(cls, s: str) -> MountSpec:
        parts = s.split()
        if not parts:
            raise ValueError("Invalid empty mount specification")
        if len(parts) < 2:
            raise ValueError(f"Missing target in mount specification {s}")
        fstype = parts[2] if len(parts) > 2 else AUTO
        options = parts[3] if len(parts) > 3 else None
        return cls(source=parts[0], target=parts[1], fstype=fstype, options=options)

    @classmethod
    def new_uuid_src(cls, uuid: str, target: str) -> MountSpec:
        """A mount whose source is the filesystem with ``uuid``."""
        return cls(f"UUID={uuid}", target)

    def source_uuid(self) -> str | None:
        """The UUID if the source is given as ``UUID=...``."""
        key, sep, rest = self.source.partition("=")
        if sep and key.lower() == "uuid":
            return rest
        return None

    def to_fstab(self) -> str:
        options = self.options if self.options is not None else "defaults"
        return f"{self.source} {self.target} {self.fstype} {options} 0 0"

    def push_option(self, opt: str) -> None:
        """Append a mount option."""
        self.options = f"{self.options},{opt}" if self.options else opt


def require_boot_uuid(spec: MountSpec) -> str:
    uuid = spec.source_uuid()
    if uuid is None:
        raise ValueError("/boot is not specified via UUID= (this is currently required)")
    return uuid


@dataclass
class RootMountInfo:
    """How to mount the root filesystem, plus kernel arguments to carry along."""

    mount_spec: str
    kargs: list[str] = field(default_factory=list)


def find_first_cmdline_arg(args: Iterable[str], key: str) -> str | None:
    """Return the value of the first ``key=value`` argument, if any."""
    for arg in args:
        k, sep, value = arg.partition("=")
        if sep and k == key:
            return value
    return None


def find_root_args_to_inherit(cmdline: Sequence[str], root_uuid: str | None) -> RootMountInfo:
    """Determine the root mount from ``root=`` on the command line, else the filesystem UUID."""
    root = find_first_cmdline_arg(cmdline, "root")
    if root is not None:
        rootflags = next((a for a in cmdline if a.startswith(ROOTFLAGS)), None)
        inherited = [a for a in cmdline if a.startswith(INITRD_ARG_PREFIX)]
        kargs = ([rootflags] if rootflags is not None else []) + inherited
        return RootMountInfo(root, kargs)
    if root_uuid is None:
        raise ValueError("No filesystem uuid found in target root")
    return RootMountInfo(f"UUID={root_uuid}", [])