import subprocess

import pytest
import requests

from hldeploy.core import Deployer
from hldeploy.errors import CommandError, ConfigurationError, DeployInProgressError, InputValidationError
from hldeploy.models import Stage
from hldeploy.services.deploy_lock import DeployLock

RECIPES_CONFIG = """\
app: recipes
image: registry.example/recipes
domain: recipes.example.com
servicePort: 8080
health:
  url: http://recipes:8080/healthz
  interval: 2s
  timeout: 45s
migrations:
  command: ["bin/rails", "db:migrate"]
"""


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class FakeResponse:
    status_code = 200

    def close(self):
        return None


class FakeRequests:
    RequestException = requests.RequestException

    def __init__(self):
        self.urls = []

    def get(self, url, **_kwargs):
        self.urls.append(url)
        return FakeResponse()


@pytest.fixture
def apps_root(tmp_path):
    root = tmp_path / "apps"
    app_dir = root / "recipes"
    app_dir.mkdir(parents=True)
    (app_dir / "homelab.yml").write_text(RECIPES_CONFIG, encoding="utf-8")
    (app_dir / "compose.yml").write_text("services: {}\n", encoding="utf-8")
    return root


def build_deployer(tmp_path, apps_root, monkeypatch, fail_on=None):
    fake_requests = FakeRequests()
    deployer = Deployer(
        root=str(apps_root),
        lock_dir=str(tmp_path / "locks"),
        requests_module=fake_requests,
    )
    commands = []

    def fake_run_cmd(cmd, cwd=None, check=True, capture_output=False):
        commands.append(cmd)
        if fail_on and fail_on in " ".join(cmd):
            raise CommandError(f"Command failed (1): {' '.join(cmd)}", cmd=cmd, returncode=1)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(deployer, "_run_cmd", fake_run_cmd)
    return deployer, commands, fake_requests


def test_deploy_runs_full_pipeline(tmp_path, apps_root, monkeypatch):
    deployer, commands, fake_requests = build_deployer(tmp_path, apps_root, monkeypatch)

    outcome = deployer.deploy(app="recipes", commit_ref="abc123def4567", context=str(tmp_path))

    assert outcome.succeeded
    assert outcome.exit_code == 0
    assert commands[0][:3] == ["docker", "buildx", "build"]
    assert commands[1][:2] == ["docker", "run"]
    assert ["docker", "tag", "registry.example/recipes:abc123d", "registry.example/recipes:latest"] in commands
    assert commands[-1][-3:] == ["up", "-d", "--remove-orphans"]
    assert fake_requests.urls == ["http://recipes:8080/healthz"]


def test_deploy_releases_lock_after_run(tmp_path, apps_root, monkeypatch):
    deployer, _, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    deployer.deploy(app="recipes", commit_ref="abc123def4567", context=str(tmp_path))

    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path / "locks")) as lock:
        assert lock.held


def test_deploy_fails_fast_while_another_run_holds_the_lock(tmp_path, apps_root, monkeypatch):
    deployer, commands, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    with DeployLock("recipes", logger=DummyLogger(), lock_dir=str(tmp_path / "locks")):
        outcome = deployer.deploy(app="recipes", commit_ref="abc123def4567", context=str(tmp_path))

    assert isinstance(outcome.error, DeployInProgressError)
    assert outcome.exit_code == 1
    assert outcome.failed_stage is None
    assert commands == []


def test_deploy_reports_missing_config_without_running_commands(tmp_path, apps_root, monkeypatch):
    deployer, commands, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    outcome = deployer.deploy(app="blog", commit_ref="abc123def4567")

    assert isinstance(outcome.error, ConfigurationError)
    assert "Config file not found" in str(outcome.error)
    assert outcome.failed_stage is None
    assert outcome.status == "aborted"
    assert commands == []


def test_deploy_rejects_short_commit_before_locking(tmp_path, apps_root, monkeypatch):
    deployer, commands, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    outcome = deployer.deploy(app="recipes", commit_ref="abc")

    assert isinstance(outcome.error, InputValidationError)
    assert commands == []
    assert not (tmp_path / "locks" / "recipes.lock").exists()


def test_deploy_migration_failure_keeps_latest_untouched(tmp_path, apps_root, monkeypatch):
    deployer, commands, fake_requests = build_deployer(tmp_path, apps_root, monkeypatch, fail_on="db:migrate")

    outcome = deployer.deploy(app="recipes", commit_ref="abc123def4567", context=str(tmp_path))

    assert outcome.failed_stage is Stage.MIGRATE
    assert outcome.status == "aborted@migrate"
    assert len(commands) == 2
    assert not any("registry.example/recipes:latest" in cmd for cmd in commands)
    assert fake_requests.urls == []


def test_rollback_promotes_existing_commit_image(tmp_path, apps_root, monkeypatch):
    deployer, commands, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    outcome = deployer.rollback(app="recipes", target_ref="eef6fc6")

    assert outcome.succeeded
    assert outcome.kind == "rollback"
    assert commands[0] == ["docker", "pull", "registry.example/recipes:eef6fc6"]
    assert not any(cmd[:3] == ["docker", "buildx", "build"] for cmd in commands)
    assert not any(cmd[:2] == ["docker", "run"] for cmd in commands)


def test_rollback_rejects_foreign_repository_reference(tmp_path, apps_root, monkeypatch):
    deployer, commands, _ = build_deployer(tmp_path, apps_root, monkeypatch)

    outcome = deployer.rollback(app="recipes", target_ref="registry.example/other:eef6fc6")

    assert isinstance(outcome.error, InputValidationError)
    assert commands == []
