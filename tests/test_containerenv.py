import pytest

from bootc.containerenv import (
    ContainerExecutionInfo,
    NotInContainerError,
    get_container_execution_info,
    parse_container_env,
)

SAMPLE = """engine="podman-4.9.3"
name="bootc-install"
id="abc123"
image="quay.io/exampleos/someos:latest"
imageid="def456"
rootless=0
"""


def test_parse_sample():
    info = parse_container_env(SAMPLE)
    assert info.engine == "podman-4.9.3"
    assert info.name == "bootc-install"
    assert info.id == "abc123"
    assert info.image == "quay.io/exampleos/someos:latest"
    assert info.imageid == "def456"
    assert info.rootless == "0"


def test_parse_skips_lines_without_equals_and_unknown_keys():
    info = parse_container_env('garbage\nunknown="x"\n  engine="podman"  \n')
    assert info == ContainerExecutionInfo(engine="podman")


def test_rootless_absent_is_none():
    info = parse_container_env('engine="podman"\n')
    assert info.rootless is None
    assert info.engine == "podman"


def test_parse_empty_is_default():
    assert parse_container_env("") == ContainerExecutionInfo()


def test_get_from_rootfs(tmp_path):
    (tmp_path / "run").mkdir()
    (tmp_path / "run" / ".containerenv").write_text(SAMPLE)
    info = get_container_execution_info(tmp_path)
    assert info == parse_container_env(SAMPLE)


def test_missing_file_raises(tmp_path):
    with pytest.raises(NotInContainerError, match="podman container"):
        get_container_execution_info(tmp_path)