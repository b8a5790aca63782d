import subprocess
from unittest import mock

import pytest

from bootc.blockdev import (
    Device,
    LoopbackDevice,
    find_parent_devices,
    list_dev,
    parse_size_mib,
    split_lsblk_line,
)


def _completed(stdout="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


@pytest.mark.parametrize("k", [0, 10, 9, 1024])
def test_parse_size_mib_identity(k):
    assert parse_size_mib(str(k)) == k


@pytest.mark.parametrize(
    "s,v",
    [
        ("0M", 0),
        ("10M", 10),
        ("10MiB", 10),
        ("1G", 1024),
        ("9G", 9216),
        ("11T", 11 * 1024 * 1024),
    ],
)
def test_parse_size_mib(s, v):
    assert parse_size_mib(s) == v


def test_parse_size_trailing_text():
    with pytest.raises(ValueError, match="Trailing text"):
        parse_size_mib("10Mfoo")


@pytest.mark.parametrize("s", ["abc", "-5", "", "1.5G"])
def test_parse_size_invalid(s):
    with pytest.raises(ValueError):
        parse_size_mib(s)


def test_split_lsblk_line():
    fields = split_lsblk_line('NAME="/dev/sda" TYPE="disk" MAJ-MIN="8_0"')
    assert fields == {"NAME": "/dev/sda", "TYPE": "disk", "MAJ-MIN": "8_0"}


def test_split_lsblk_line_skips_empty_values():
    assert split_lsblk_line('NAME="" TYPE="part"') == {"TYPE": "part"}


def test_device_from_dict():
    dev = Device.from_dict(
        {
            "name": "vda",
            "serial": None,
            "model": "Virtual disk",
            "children": [{"name": "vda1", "fstype": "xfs", "label": "root"}],
        }
    )
    assert dev.path() == "/dev/vda"
    assert dev.model == "Virtual disk"
    assert dev.has_children()
    assert dev.children[0].path() == "/dev/vda1"
    assert dev.children[0].fstype == "xfs"
    assert not dev.children[0].has_children()


def test_device_empty_children():
    assert Device(name="loop0", children=[]).has_children() is False


def test_find_parent_devices():
    output = (
        'NAME="/dev/vda4" TYPE="part"\n'
        'NAME="/dev/mapper/mpatha" TYPE="mpath"\n'
        'NAME="/dev/sda" TYPE="disk"\n'
    )
    with mock.patch("subprocess.run", return_value=_completed(output)) as run:
        parents = find_parent_devices("/dev/vda4")
    assert parents == ["/dev/mapper/mpatha"]
    assert run.call_args.args[0][-1] == "/dev/vda4"


def test_find_parent_devices_disk_and_loop():
    output = (
        'NAME="/dev/loop0p1" TYPE="part"\n'
        'NAME="/dev/loop0" TYPE="loop"\n'
    )
    with mock.patch("subprocess.run", return_value=_completed(output)):
        assert find_parent_devices("/dev/loop0p1") == ["/dev/loop0"]


def test_find_parent_devices_missing_type():
    output = 'NAME="/dev/vda4" TYPE="part"\nNAME="/dev/vda"\n'
    with mock.patch("subprocess.run", return_value=_completed(output)):
        with pytest.raises(ValueError, match="missing TYPE"):
            find_parent_devices("/dev/vda4")


def test_list_dev():
    output = '{"blockdevices": [{"name": "vda", "serial": null, "model": null, "label": null, "fstype": null}]}'
    with mock.patch("subprocess.run", return_value=_completed(output)):
        dev = list_dev("/dev/vda")
    assert dev.name == "vda"
    assert dev.children is None


def test_list_dev_failure():
    with mock.patch("subprocess.run", return_value=_completed("", returncode=1)):
        with pytest.raises(RuntimeError, match="Failed to list block devices"):
            list_dev("/dev/vda")


def test_loopback_device_lifecycle(monkeypatch):
    monkeypatch.delenv("BOOTC_DIRECT_IO", raising=False)
    with mock.patch("subprocess.run", return_value=_completed("/dev/loop3\n")) as run:
        lo = LoopbackDevice("/tmp/disk.img")
        assert lo.path() == "/dev/loop3"
        assert "--direct-io=off" in run.call_args.args[0]
        lo.close()
        assert run.call_args.args[0] == ["losetup", "-d", "/dev/loop3"]
        calls = run.call_count
        lo.close()
        assert run.call_count == calls
    with pytest.raises(RuntimeError):
        lo.path()


def test_loopback_direct_io(monkeypatch):
    monkeypatch.setenv("BOOTC_DIRECT_IO", "on")
    with mock.patch("subprocess.run", return_value=_completed("/dev/loop1\n")) as run:
        with LoopbackDevice("/tmp/disk.img") as lo:
            assert "--direct-io=on" in run.call_args_list[0].args[0]
            assert lo.path() == "/dev/loop1"
        assert run.call_args.args[0] == ["losetup", "-d", "/dev/loop1"]