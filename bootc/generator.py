"""systemd generator reconciling ``/etc/fstab`` on a read-only composefs root."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)

EDIT_UNIT = "bootc-fstab-edit.service"
FSTAB_ANACONDA_STAMP = "Created by anaconda"
BOOTC_EDITED_STAMP = "Updated by bootc-fstab-edit.service"

_EDIT_UNIT_CONTENTS = """[Unit]
DefaultDependencies=no
After=systemd-fsck-root.service
Before=local-fs-pre.target local-fs.target shutdown.target systemd-remount-fs.service

[Service]
Type=oneshot
RemainAfterExit=yes
ExecStart=bootc internals fixup-etc-fstab
"""


def _atomic_write(directory: Path, name: str, data: str) -> None:
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=f".{name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, directory / name)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def _generate_fstab_editor(unit_dir: Path) -> None:
    _atomic_write(unit_dir, EDIT_UNIT, _EDIT_UNIT_CONTENTS)
    target = "local-fs-pre.target.wants"
    (unit_dir / target).mkdir(parents=True, exist_ok=True)
    os.symlink(f"../{EDIT_UNIT}", unit_dir / target / EDIT_UNIT)


def fstab_generator_impl(root: str | os.PathLike[str], unit_dir: str | os.PathLike[str]) -> bool:
    """Generate the fstab editing unit if needed; return whether it was generated."""
    root = Path(root)
    unit_dir = Path(unit_dir)
    # Do nothing if not ostree-booted
    if not (root / "run/ostree-booted").exists():
        return False
    try:
        text = (root / "etc/fstab").read_text()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise RuntimeError(f"bootc generator: Opening /etc/fstab: {e}") from e

    from_anaconda = False
    for line in text.splitlines():
        if BOOTC_EDITED_STAMP in line:
            return False
        if FSTAB_ANACONDA_STAMP in line:
            from_anaconda = True
    log.debug("/etc/fstab from anaconda: %s", from_anaconda)
    if not from_anaconda:
        return False
    _generate_fstab_editor(unit_dir)
    return True


def _unescape_mountinfo(field: str) -> str:
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), field)


def _is_under(path: str, mountpoint: str) -> bool:
    if mountpoint == "/" or path == mountpoint:
        return True
    return path.startswith(mountpoint.rstrip("/") + "/")


def _filesystem_type(path: Path) -> str | None:
    target = os.path.realpath(path)
    best: str | None = None
    best_len = -1
    with open("/proc/self/mountinfo") as f:
        for line in f:
            pre, sep, post = line.partition(" - ")
            fields = pre.split()
            rest = post.split()
            if not sep or len(fields) < 5 or not rest:
                continue
            mountpoint = _unescape_mountinfo(fields[4])
            if _is_under(target, mountpoint) and len(mountpoint) >= best_len:
                best, best_len = rest[0], len(mountpoint)
    return best


def generator(root: str | os.PathLike[str], unit_dir: str | os.PathLike[str]) -> None:
    """Main entrypoint; acts only when the root is a read-only overlayfs."""
    root = Path(root)
    try:
        fstype = _filesystem_type(root)
    except FileNotFoundError:
        log.debug("No mount information available")
        return
    if fstype != "overlay":
        log.debug("Root is not overlayfs")
        return
    if not os.statvfs(root).f_flag & os.ST_RDONLY:
        log.debug("Root is writable")
        return
    updated = fstab_generator_impl(root, unit_dir)
    log.debug("Generated fstab: %s", updated)