"""Deploy and rollback state machines.

Both pipelines walk a fixed transition table one stage at a time. A stage
runs only after the previous one succeeded, and the first failure stops the
machine at that stage (``aborted@<stage>``). There is no compensating
transition: recovering from a failed deploy is an explicit rollback.
"""

import logging
import os
import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from rich.console import Console

from hldeploy.errors import DeployError
from hldeploy.models import AppConfig, DeployRequest, ImageTagSet, PipelineOutcome, Stage
from hldeploy.services.tag_planner import plan_tags

logger = logging.getLogger("hldeploy")


class PipelineMachine:
    """Runs ``STAGES`` in order, then ``DONE``."""

    kind = "pipeline"
    STAGES: Tuple[Stage, ...] = ()

    def __init__(self, app: str, console: Console, clock=time.monotonic):
        self.app = app
        self.console = console
        self.clock = clock
        self.state: Optional[Stage] = None
        self.history: List[Stage] = []

    @classmethod
    def transitions(cls) -> Dict[Stage, Stage]:
        return dict(zip(cls.STAGES, cls.STAGES[1:] + (Stage.DONE,)))

    def describe(self, stage: Stage) -> str:
        return stage.value

    def handler(self, stage: Stage) -> Callable[[], None]:
        return getattr(self, f"_stage_{stage.value}")

    def cleanup(self):
        return None

    def run(self) -> PipelineOutcome:
        table = self.transitions()
        start = self.clock()
        completed: List[Stage] = []
        state = self.STAGES[0]

        try:
            while state is not Stage.DONE:
                self.state = state
                self.history.append(state)
                description = self.describe(state)
                self.console.print(f"[dim]•[/dim] {description}")
                logger.info("[%s %s] %s", self.kind, self.app, description)

                try:
                    self.handler(state)()
                except DeployError as exc:
                    return self._aborted(state, exc, completed, start)
                except KeyboardInterrupt:
                    return self._aborted(state, DeployError("Operation cancelled by user."), completed, start)
                except Exception as exc:
                    logger.exception("Unexpected error during %s", state.value)
                    return self._aborted(state, DeployError(f"Unexpected error: {exc}"), completed, start)

                completed.append(state)
                state = table[state]
        finally:
            self.cleanup()

        self.state = Stage.DONE
        completed.append(Stage.DONE)
        duration = self.clock() - start
        self.console.print(f"[green]✓[/green] [bold]{self.kind} complete[/bold]")
        logger.info("%s of %s completed in %.1fs", self.kind, self.app, duration)
        return PipelineOutcome(
            kind=self.kind,
            app=self.app,
            stages=tuple(completed),
            duration_seconds=duration,
        )

    def _aborted(self, stage: Stage, error: DeployError, completed: List[Stage], start: float) -> PipelineOutcome:
        self.console.print(f"[bold red]x[/bold red] {self.kind} failed at {stage.value}: {error}")
        logger.error("%s of %s aborted at %s: %s", self.kind, self.app, stage.value, error)
        return PipelineOutcome(
            kind=self.kind,
            app=self.app,
            stages=tuple(completed),
            failed_stage=stage,
            error=error,
            duration_seconds=self.clock() - start,
        )


class _PromotionStages:
    """Retag, restart and health stages shared by deploy and rollback."""

    config: AppConfig
    retagger = None
    stack_controller = None
    health_gate = None
    run_cmd: Callable

    def promotion_source(self) -> str:
        raise NotImplementedError

    def _stage_retag(self):
        self.retagger.promote(self.config.image, self.promotion_source(), self.run_cmd)

    def _stage_restart(self):
        self.stack_controller.restart(self.config.app_dir, self.config.network, self.run_cmd)

    def _stage_health(self):
        health = self.config.health
        self.health_gate.wait(health.url, health.interval_ms, health.timeout_ms)


class DeployPipeline(_PromotionStages, PipelineMachine):
    kind = "deploy"
    STAGES = (Stage.BUILD, Stage.MIGRATE, Stage.RETAG, Stage.RESTART, Stage.HEALTH)

    def __init__(
        self,
        request: DeployRequest,
        config: AppConfig,
        image_builder,
        migration_runner,
        retagger,
        stack_controller,
        health_gate,
        run_cmd: Callable,
        console: Console,
        git_exporter=None,
        git_dir: Optional[str] = None,
        migration_env: Optional[Mapping[str, str]] = None,
        clock=time.monotonic,
    ):
        super().__init__(request.app, console, clock=clock)
        self.request = request
        self.config = config
        self.tags: ImageTagSet = plan_tags(config.image, request.commit_ref, request.branch)
        self.image_builder = image_builder
        self.migration_runner = migration_runner
        self.retagger = retagger
        self.stack_controller = stack_controller
        self.health_gate = health_gate
        self.run_cmd = run_cmd
        self.git_exporter = git_exporter
        self.git_dir = git_dir
        self.migration_env = dict(config.migrations.env)
        self.migration_env.update(migration_env or {})
        self.worktree: Optional[str] = None

    def describe(self, stage: Stage) -> str:
        if stage is Stage.BUILD:
            return f"building {self.config.app} {self.request.branch} ({self.request.short_sha})"
        return {
            Stage.MIGRATE: f"running migrations in {self.tags.sha_tag}",
            Stage.RETAG: f"retagging {self.tags.sha_tag} -> {self.tags.latest_tag}",
            Stage.RESTART: "restarting compose",
            Stage.HEALTH: f"waiting for health at {self.config.health.url}",
        }[stage]

    def promotion_source(self) -> str:
        return self.tags.sha_tag

    def build_tags(self) -> List[str]:
        # latest is only ever moved by the retag stage
        return [self.tags.sha_tag, self.tags.branch_sha_tag]

    def _stage_build(self):
        context = self.request.context
        dockerfile = self.request.dockerfile
        if self.git_dir:
            self.worktree = self.git_exporter.export_commit(self.git_dir, self.request.commit_ref)
            context = self.worktree
            dockerfile = os.path.join(self.worktree, dockerfile or "Dockerfile")
            logger.debug("Build context: %s", context)

        self.image_builder.build_and_push(
            context=context,
            tags=self.build_tags(),
            run_cmd=self.run_cmd,
            dockerfile=dockerfile,
            platforms=self.config.platforms,
        )

    def _stage_migrate(self):
        migrations = self.config.migrations
        self.migration_runner.run(
            image_ref=self.tags.sha_tag,
            network=self.config.network,
            command=migrations.command,
            run_cmd=self.run_cmd,
            env=self.migration_env,
            env_file=self.config.env_file,
            cwd=self.config.app_dir,
        )

    def cleanup(self):
        if self.worktree and self.git_exporter is not None:
            self.git_exporter.cleanup(self.worktree)
            self.worktree = None


class RollbackPipeline(_PromotionStages, PipelineMachine):
    kind = "rollback"
    STAGES = (Stage.RETAG, Stage.RESTART, Stage.HEALTH)

    def __init__(
        self,
        target_ref: str,
        config: AppConfig,
        retagger,
        stack_controller,
        health_gate,
        run_cmd: Callable,
        console: Console,
        clock=time.monotonic,
    ):
        super().__init__(config.app, console, clock=clock)
        self.config = config
        self.retagger = retagger
        self.stack_controller = stack_controller
        self.health_gate = health_gate
        self.run_cmd = run_cmd
        self.source_ref = retagger.resolve_rollback_ref(config.image, target_ref)

    def describe(self, stage: Stage) -> str:
        return {
            Stage.RETAG: f"retagging {self.source_ref} -> {self.config.image}:latest",
            Stage.RESTART: "restarting compose",
            Stage.HEALTH: "waiting for healthchecks to pass",
        }[stage]

    def promotion_source(self) -> str:
        return self.source_ref
