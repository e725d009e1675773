import os

import pytest

from hldeploy.errors import DeployInProgressError
from hldeploy.services.deploy_lock import DeployLock


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


def test_second_holder_for_same_app_fails_fast(tmp_path):
    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)) as lock:
        assert lock.held

        with pytest.raises(DeployInProgressError, match="already running for recipes"):
            DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)).acquire()


def test_different_apps_do_not_contend(tmp_path):
    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)):
        with DeployLock("theme", logger=DummyLogger(), lock_dir=str(tmp_path)) as other:
            assert other.held


def test_lock_is_released_when_body_raises(tmp_path):
    with pytest.raises(RuntimeError):
        with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)):
            raise RuntimeError("pipeline blew up")

    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)) as lock:
        assert lock.held


def test_lock_file_records_holder_pid(tmp_path):
    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path)) as lock:
        assert open(lock.lock_path, encoding="ascii").read().strip() == str(os.getpid())


def test_lock_dir_defaults_to_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("HL_LOCK_DIR", str(tmp_path / "locks"))

    lock = DeployLock("recipes", logger=DummyLogger())

    assert lock.lock_path == str(tmp_path / "locks" / "recipes.lock")
