"""Command line parsing for the bootc tool."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Iterable

from bootc.installopts import ReplaceMode

log = logging.getLogger(__name__)

# The name of the binary installed into /usr/lib/systemd/system-generators
GENERATOR_BIN = "bootc-systemd-generator"

_VISIBLE_COMMANDS = "{upgrade,switch,rollback,edit,status,usr-overlay,install}"


def _add_target_opts(p: argparse.ArgumentParser) -> None:
    p.add_argument("--target-transport", default="registry",
                   help="The transport; e.g. oci, oci-archive. Defaults to `registry`.")
    p.add_argument("--target-imgref", help="Specify the image to fetch for subsequent updates")
    p.add_argument("--target-no-signature-verification", action="store_true",
                   help=argparse.SUPPRESS)
    p.add_argument("--enforce-container-sigpolicy", action="store_true",
                   help="Enforce that /etc/containers/policy.json requires signatures")
    p.add_argument("--target-ostree-remote", help="Enable verification via an ostree remote")
    p.add_argument("--skip-fetch-check", action="store_true",
                   help="Skip verifying accessibility of the target image")


def _add_source_opts(p: argparse.ArgumentParser) -> None:
    p.add_argument("--source-imgref",
                   help="Install the system from an explicitly given source")


def _add_config_opts(p: argparse.ArgumentParser) -> None:
    p.add_argument("--disable-selinux", action="store_true",
                   help="Disable SELinux in the target (installed) system")
    p.add_argument("--karg", action="append",
                   help="Add a kernel argument; may be given multiple times")
    p.add_argument("--root-ssh-authorized-keys",
                   help="Path to an authorized_keys injected into the root account")
    p.add_argument("--generic-image", action="store_true",
                   help="Perform configuration suitable for a generic disk image")


def _add_install(sub: argparse._SubParsersAction) -> None:
    install = sub.add_parser("install", help="Install the running container to a target")
    install.set_defaults(command="install")
    isub = install.add_subparsers(dest="install_command", metavar="COMMAND")
    isub.required = True

    tofs = isub.add_parser("to-filesystem", help="Install to the target filesystem")
    tofs.set_defaults(install_command="to-filesystem")
    tofs.add_argument("root_path", help="Path to the mounted root filesystem")
    tofs.add_argument("--root-mount-spec",
                      help="Source device specification for the root filesystem")
    tofs.add_argument("--boot-mount-spec", help="Mount specification for the /boot filesystem")
    tofs.add_argument("--replace", type=ReplaceMode, choices=list(ReplaceMode),
                      help="Initialize the system in-place")
    tofs.add_argument("--acknowledge-destructive", action="store_true",
                      help="Skip warnings when targeting the running system's root")
    tofs.add_argument("--skip-finalize", action="store_true",
                      help="Skip trimming and read-only remounting of the target")
    _add_source_opts(tofs)
    _add_target_opts(tofs)
    _add_config_opts(tofs)

    existing = isub.add_parser("to-existing-root",
                               help="Install to the host root filesystem")
    existing.set_defaults(install_command="to-existing-root")
    existing.add_argument("--replace", type=ReplaceMode, choices=list(ReplaceMode),
                          default=ReplaceMode.ALONGSIDE,
                          help="Configure how existing data is treated")
    _add_source_opts(existing)
    _add_target_opts(existing)
    _add_config_opts(existing)
    existing.add_argument("--acknowledge-destructive", action="store_true",
                          help="Accept that this is a destructive action")
    existing.add_argument("root_path", nargs="?", default="/target",
                          help="Path to the mounted root")

    printcfg = isub.add_parser("print-configuration",
                               help="Output the merged installation configuration as JSON")
    printcfg.set_defaults(install_command="print-configuration")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all bootc commands."""
    parser = argparse.ArgumentParser(
        prog="bootc",
        description="Deploy and transactionally update in-place with bootable container images.",
    )
    sub = parser.add_subparsers(dest="command", metavar=_VISIBLE_COMMANDS)
    sub.required = True

    upgrade = sub.add_parser("upgrade", aliases=["update"],
                             help="Download and queue an updated container image to apply")
    upgrade.set_defaults(command="upgrade")
    upgrade.add_argument("--quiet", action="store_true", help="Don't display progress")
    group = upgrade.add_mutually_exclusive_group()
    group.add_argument("--check", action="store_true",
                       help="Check if an update is available without applying it")
    group.add_argument("--apply", action="store_true",
                       help="Restart or reboot into the new target image")

    switch = sub.add_parser("switch", help="Target a new container image reference to boot")
    switch.set_defaults(command="switch")
    switch.add_argument("--quiet", action="store_true", help="Don't display progress")
    switch.add_argument("--transport", default="registry",
                        help="The transport; e.g. oci, oci-archive. Defaults to `registry`.")
    switch.add_argument("--no-signature-verification", action="store_true",
                        help=argparse.SUPPRESS)
    switch.add_argument("--enforce-container-sigpolicy", action="store_true",
                        help="Enforce that /etc/containers/policy.json requires signatures")
    switch.add_argument("--ostree-remote", help="Enable verification via an ostree remote")
    switch.add_argument("--mutate-in-place", action="store_true", help=argparse.SUPPRESS)
    switch.add_argument("--retain", action="store_true",
                        help="Retain reference to currently booted image")
    switch.add_argument("target", help="Target image to use for the next boot")

    rollback = sub.add_parser("rollback", help="Change the bootloader entry ordering")
    rollback.set_defaults(command="rollback")

    edit = sub.add_parser("edit", help="Apply full changes to the host specification")
    edit.set_defaults(command="edit")
    edit.add_argument("-f", "--filename", help="Use filename to edit system specification")
    edit.add_argument("--quiet", action="store_true", help="Don't display progress")

    status = sub.add_parser("status", help="Display status")
    status.set_defaults(command="status")
    status.add_argument("--json", action="store_true", help="Output in JSON format")
    status.add_argument("--booted", action="store_true",
                        help="Only display status for the booted deployment")

    usroverlay = sub.add_parser("usr-overlay", aliases=["usroverlay"],
                                help="Add a transient writable overlayfs on /usr")
    usroverlay.set_defaults(command="usr-overlay")

    _add_install(sub)

    execns = sub.add_parser("exec-in-host-mount-namespace")
    execns.set_defaults(command="exec-in-host-mount-namespace")
    execns.add_argument("args", nargs=argparse.REMAINDER)

    internals = sub.add_parser("internals")
    internals.set_defaults(command="internals")
    isub = internals.add_subparsers(dest="internals_command", metavar="COMMAND")
    isub.required = True
    gen = isub.add_parser("systemd-generator")
    gen.set_defaults(internals_command="systemd-generator")
    gen.add_argument("normal_dir")
    gen.add_argument("early_dir", nargs="?")
    gen.add_argument("late_dir", nargs="?")
    fixup = isub.add_parser("fixup-etc-fstab")
    fixup.set_defaults(internals_command="fixup-etc-fstab")

    return parser


def parse_including_static(args: Iterable[str]) -> argparse.Namespace:
    """Parse a full argument vector, including argv[0].

    When invoked as the systemd generator binary, the arguments are parsed
    as ``internals systemd-generator``.  Parse errors exit the process.
    """
    it = iter(args)
    first = next(it, None)
    rest = [str(a) for a in it]
    argv0 = None
    if first is not None and "/" in first:
        argv0 = first.rsplit("/", 1)[1]
    log.debug("argv0=%r", argv0)
    parser = build_parser()
    if argv0 == GENERATOR_BIN:
        return parser.parse_args(["internals", "systemd-generator", *rest])
    return parser.parse_args(rest)