# bootc

A Python library of building blocks for hosts that boot from ostree-based
container images. It covers block devices, mount specifications and
`/etc/fstab`, podman's container environment file, deployment directories,
install-time option types, and command-line parsing.

## Installation

```
pip install .
```

## Modules

- `bootc.blockdev`: block device queries and changes through `lsblk`,
  `wipefs` and `losetup`.
  - `Device`, with `list_dev(dev)` and `list_devices()`.
  - `LoopbackDevice(path)`, which can be used as a context manager.
  - `find_parent_devices(device)` and `split_lsblk_line(line)`.
  - `reread_partition_table(file, retry)`, `udev_settle()` and `wipefs(dev)`.
  - `parse_size_mib(s)`, which takes sizes such as `10M`, `10MiB`, `9G` or
    `11T` and returns mebibytes.
- `bootc.mountspec`: the `MountSpec` type for fstab-style mount lines and
  `find_root_args_to_inherit(cmdline, root_uuid)`. The second one takes
  `root=` from a kernel command line, together with any `rootflags=` and
  `rd.*` arguments, and otherwise falls back to `UUID=<root_uuid>`.
- `bootc.fstab`: `fixup_etc_fstab(root)` atomically rewrites
  `<root>/etc/fstab` so that the `/` entry is mounted `ro`. Each changed line
  is preceded by a stamp comment. `edit_fstab_line(line)` applies the same
  change to a single line.
- `bootc.generator`: `fstab_generator_impl(root, unit_dir)` writes a
  `bootc-fstab-edit.service` unit and its `local-fs-pre.target.wants` link. It
  does this only when the root is ostree-booted and its `/etc/fstab` was
  created by anaconda and not yet edited. `generator(root, unit_dir)` also
  requires the root to be a read-only overlay.
- `bootc.containerenv`: `parse_container_env(text)` and
  `get_container_execution_info(rootfs)` read `run/.containerenv`.
- `bootc.deployments`: `find_deploy_dir(root)` and
  `find_newest_deployment_name(deploysdir)`.
- `bootc.installopts`: provides the following.
  - `ReplaceMode` and `SELinuxFinalState`.
  - `InstallAleph`, with `to_json()`.
  - `check_skopeo_version(output)`, which requires skopeo 1.11 or later.
- `bootc.cliparse`: `build_parser()` and `parse_including_static(args)`. When
  argv[0] names `bootc-systemd-generator`, the arguments are parsed as
  `internals systemd-generator`.
- `bootc.hostns`: `exec_in_host_mountns(args)` replaces the current process
  with a command run in pid 1's mount namespace.

## Example

```python
from bootc.blockdev import parse_size_mib
from bootc.mountspec import MountSpec, find_root_args_to_inherit
from bootc.cliparse import parse_including_static

parse_size_mib("9G")                        # 9216

spec = MountSpec.parse("/dev/vda4 /boot")
spec.push_option("ro")
spec.to_fstab()                             # "/dev/vda4 /boot auto ro 0 0"

info = find_root_args_to_inherit(["root=/dev/mapper/root", "rd.lvm.lv=root"], None)
info.mount_spec                             # "/dev/mapper/root"
info.kargs                                  # ["rd.lvm.lv=root"]

parse_including_static(["bootc", "status"]).command   # "status"
```

## What this package does not do

- **No command-line program.** Nothing installs a `bootc` command or a
  systemd generator executable. The parser in `bootc.cliparse` recognises the
  verbs, but no code carries them out.
- **No verbs that act on the host.** The package does not upgrade, switch,
  roll back, edit or report status of a booted system.
- **No installation steps.** It does not install a bootloader, prepare
  filesystems, or check root privileges for an installation.

## Tests

```
pip install .[test]
pytest
```