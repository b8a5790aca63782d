"""Locating ostree deployment directories on a physical root."""

from __future__ import annotations

import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

OSTREE_DEPLOY = "sysroot/ostree/deploy"


def _is_utf8(name: str) -> bool:
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def find_newest_deployment_name(deploysdir: str | os.PathLike[str]) -> str:
    """Return the name of the most recently modified deployment directory."""
    dirs: list[tuple[str, int]] = []
    with os.scandir(deploysdir) as entries:
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            if not _is_utf8(entry.name):
                continue
            mtime = int(entry.stat(follow_symlinks=False).st_mtime)
            dirs.append((entry.name, mtime))
    if not dirs:
        raise RuntimeError("No deployment directory found")
    dirs.sort(key=lambda d: d[1])
    return dirs[-1][0]


def find_deploy_dir(root: str | os.PathLike[str]) -> Path:
    """Return the first stateroot ``deploy`` directory below ``root``.

    Scans ``sysroot/ostree/deploy/<stateroot>/deploy`` without relying on
    the system being officially booted into an ostree deployment.
    """
    deploy_root = Path(root) / OSTREE_DEPLOY
    with os.scandir(deploy_root) as entries:
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            log.debug("Checking %r", entry.name)
            candidate = Path(entry.path) / "deploy"
            if candidate.is_dir():
                return candidate
    raise RuntimeError("Failed to find a deployment")