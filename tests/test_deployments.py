import os

import pytest

from bootc.deployments import find_deploy_dir, find_newest_deployment_name

TARGET = "af36eb0086bb55ac601600478c6168f834288013d60f8870b7851f44bf86c3c5.0"
DEPLOYDIR = "sysroot/ostree/deploy/default/deploy"


def test_find_deploy_dir_and_newest(tmp_path):
    (tmp_path / DEPLOYDIR / TARGET).mkdir(parents=True)
    (tmp_path / DEPLOYDIR / f"{TARGET}.origin").write_text("[origin]\n")
    deploydir = find_deploy_dir(tmp_path)
    assert deploydir == tmp_path / DEPLOYDIR
    assert find_newest_deployment_name(deploydir) == TARGET


def test_newest_by_mtime(tmp_path):
    old = tmp_path / "old.0"
    new = tmp_path / "new.0"
    old.mkdir()
    new.mkdir()
    os.utime(old, (1000, 1000))
    os.utime(new, (2000, 2000))
    assert find_newest_deployment_name(tmp_path) == "new.0"
    os.utime(old, (3000, 3000))
    assert find_newest_deployment_name(tmp_path) == "old.0"


def test_newest_ignores_files(tmp_path):
    (tmp_path / "only.0").mkdir()
    os.utime(tmp_path / "only.0", (1000, 1000))
    (tmp_path / "later.origin").write_text("x")
    assert find_newest_deployment_name(tmp_path) == "only.0"


def test_newest_none(tmp_path):
    (tmp_path / "file.origin").write_text("x")
    with pytest.raises(RuntimeError, match="No deployment directory found"):
        find_newest_deployment_name(tmp_path)


def test_find_deploy_dir_no_deploy_subdir(tmp_path):
    (tmp_path / "sysroot/ostree/deploy/default").mkdir(parents=True)
    with pytest.raises(RuntimeError, match="Failed to find a deployment"):
        find_deploy_dir(tmp_path)


def test_find_deploy_dir_missing_tree(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_deploy_dir(tmp_path)