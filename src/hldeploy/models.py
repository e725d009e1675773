"""Shared domain models for hldeploy."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from hldeploy.errors import DeployError


@dataclass(frozen=True)
class DeployRequest:
    """One deploy invocation for a single commit."""

    app: str
    commit_ref: str
    branch: str = "master"
    context: str = "."
    dockerfile: Optional[str] = None

    @property
    def short_sha(self) -> str:
        return self.commit_ref[:7]


@dataclass(frozen=True)
class ImageTagSet:
    """The three image references used throughout one deploy."""

    sha_tag: str
    branch_sha_tag: str
    latest_tag: str

    def all(self) -> List[str]:
        return [self.sha_tag, self.branch_sha_tag, self.latest_tag]


@dataclass(frozen=True)
class HealthConfig:
    url: str
    interval_ms: int = 2000
    timeout_ms: int = 45000


@dataclass(frozen=True)
class MigrationConfig:
    command: Tuple[str, ...] = ("bin/rails", "db:migrate")
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    """Validated, read-only snapshot of an app's homelab.yml."""

    app: str
    image: str
    domain: str
    service_port: int
    health: HealthConfig
    app_dir: str
    resolver: str = "myresolver"
    network: str = "traefik_proxy"
    platforms: str = "linux/amd64"
    migrations: MigrationConfig = field(default_factory=MigrationConfig)
    secrets: Tuple[str, ...] = ()

    @property
    def env_file(self) -> str:
        return os.path.join(self.app_dir, ".env")


class Stage(str, Enum):
    BUILD = "build"
    MIGRATE = "migrate"
    RETAG = "retag"
    RESTART = "restart"
    HEALTH = "health"
    DONE = "done"


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of one deploy or rollback run.

    ``failed_stage`` is None both on success and when the run never reached
    the pipeline (bad config, lease held by another run).
    """

    kind: str
    app: str
    stages: Tuple[Stage, ...] = ()
    failed_stage: Optional[Stage] = None
    error: Optional[DeployError] = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and Stage.DONE in self.stages

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def status(self) -> str:
        if self.succeeded:
            return "success"
        if self.failed_stage is not None:
            return f"aborted@{self.failed_stage.value}"
        return "aborted"
