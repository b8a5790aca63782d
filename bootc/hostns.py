"""Running commands in the mount namespace of the host (pid 1)."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence

log = logging.getLogger(__name__)

EXEC_IN_HOST_MOUNTNS_VERB = "exec-in-host-mount-namespace"
_PID1_MOUNTNS = "/proc/1/ns/mnt"


def run_in_host_mountns(cmd: str) -> list[str]:
    """Return an argument vector that runs ``cmd`` in the host mount namespace.

    The returned command re-invokes this tool with the hidden verb that
    enters the namespace of pid 1 before executing ``cmd``; further
    arguments may be appended by the caller.
    """
    return [sys.executable, "-m", "bootc.cli", EXEC_IN_HOST_MOUNTNS_VERB, cmd]


def _exec_via_setns(cmd: str, args: Sequence[str]) -> None:
    try:
        fd = os.open(_PID1_MOUNTNS, os.O_RDONLY)
    except OSError as e:
        raise RuntimeError(f"Re-exec in host mountns: open pid1 mountns: {e}") from e
    try:
        os.setns(fd, os.CLONE_NEWNS)
    except OSError as e:
        raise RuntimeError(f"Re-exec in host mountns: setns: {e}") from e
    finally:
        os.close(fd)
    os.chdir("/")
    # Work around supermin doing chroot() and not pivot_root
    if not os.path.exists("/usr") and os.path.exists("/root/usr"):
        log.debug("Using supermin workaround")
        os.chroot("/root")
        os.chdir("/")
    os.execvp(cmd, [cmd, *args])


def exec_in_host_mountns(args: Sequence[str]) -> None:
    """Replace the current process with ``args`` run in the host mount namespace.

    Raises ValueError if no command is given; does not return on success.
    """
    if not args:
        raise ValueError("Re-exec in host mountns: Missing command")
    cmd, *rest = list(args)
    log.debug("%r %r", cmd, rest)
    try:
        if hasattr(os, "setns"):
            _exec_via_setns(cmd, rest)
        else:
            argv = ["nsenter", "--target", "1", "--mount", "--wd=/", "--", cmd, *rest]
            os.execvp(argv[0], argv)
    except OSError as e:
        raise RuntimeError(f"Re-exec in host mountns: exec: {e}") from e