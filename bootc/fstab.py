"""Reconciling ``/etc/fstab`` with a read-only composefs root."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path

from bootc.generator import BOOTC_EDITED_STAMP

log = logging.getLogger(__name__)

FSTAB_PATH = "etc/fstab"
_PATH_IDX = 1
_OPTIONS_IDX = 3
_CONTEXT = "Updating /etc/fstab for anaconda+composefs"


def edit_fstab_line(line: str) -> str | None:
    """Return the replacement text for an fstab line, or None to keep it as is.

    Only the entry mounting ``/`` without a ``ro`` option is changed: ``ro``
    is appended to its options and a stamp comment is placed above it.  The
    returned text ends with a newline.
    """
    if line.startswith("#"):
        return None
    parts = line.split()
    if len(parts) <= _PATH_IDX:
        log.debug("No path in entry: %s", line)
        return None
    if len(parts) <= _OPTIONS_IDX:
        log.debug("No options in entry: %s", line)
        return None
    if parts[_PATH_IDX] != "/":
        return None
    options = parts[_OPTIONS_IDX]
    if "ro" in options.split(","):
        return None
    parts[_OPTIONS_IDX] = f"{options},ro"
    return f"# {BOOTC_EDITED_STAMP}\n{' '.join(parts)}\n"


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _atomic_replace(path: Path, data: str, mode: int) -> None:
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(data)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def fixup_etc_fstab(root: str | os.PathLike[str]) -> None:
    """Add ``ro`` to the root entry of ``etc/fstab`` below ``root``, atomically."""
    path = Path(root) / FSTAB_PATH
    try:
        text = path.read_text()
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError as e:
        raise RuntimeError(f"{_CONTEXT}: Opening {FSTAB_PATH}: {e}") from e

    out = []
    for line in _lines(text):
        edited = edit_fstab_line(line)
        out.append(edited if edited is not None else f"{line}\n")

    try:
        _atomic_replace(path, "".join(out), mode)
    except OSError as e:
        raise RuntimeError(f"{_CONTEXT}: Replacing /etc/fstab: {e}") from e

    print("Updated /etc/fstab to add `ro` for `/`")