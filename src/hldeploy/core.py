import logging
import subprocess
import time
from typing import Callable, List, Mapping, Optional

import requests
from rich.console import Console

from .errors import ConfigurationError, DeployError, DeployInProgressError
from .errors_catalog import actionable_error
from .models import AppConfig, DeployRequest, PipelineOutcome, Stage
from .pipeline import DeployPipeline, RollbackPipeline
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader
from .services.deploy_lock import DeployLock
from .services.health_gate import HealthGateService
from .services.image_builder import ImageBuilderService
from .services.migration_runner import MigrationRunnerService
from .services.retagger import RetagService
from .services.stack_controller import StackControllerService
from .services.worktree import GitExportService

console = Console()
logger = logging.getLogger("hldeploy")

_STAGE_ERROR_CODES = {
    Stage.BUILD: "build_failed",
    Stage.MIGRATE: "migrate_failed",
    Stage.RETAG: "retag_failed",
    Stage.RESTART: "restart_failed",
    Stage.HEALTH: "health_failed",
}


class Deployer:
    """Entry point for ``deploy`` and ``rollback`` on this host."""

    def __init__(
        self,
        root: Optional[str] = None,
        lock_dir: Optional[str] = None,
        requests_module=requests,
    ):
        self.config_loader = ConfigLoader(root=root)
        self.lock_dir = lock_dir

        self.command_runner = CommandRunner(logger=logger)
        self.image_builder = ImageBuilderService(logger=logger, console=console)
        self.migration_runner = MigrationRunnerService(logger=logger, console=console)
        self.retagger = RetagService(logger=logger, console=console)
        self.stack_controller = StackControllerService(logger=logger, console=console)
        self.health_gate = HealthGateService(
            logger=logger,
            console=console,
            requests_module=requests_module,
        )
        self.git_exporter = GitExportService(logger=logger, console=console)

    def _run_cmd(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        check: bool = True,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, cwd=cwd, check=check, capture_output=capture_output)

    def load_config(self, app: str) -> AppConfig:
        return self.config_loader.load(app)

    def deploy(
        self,
        app: str,
        commit_ref: str,
        branch: str = "master",
        context: Optional[str] = None,
        dockerfile: Optional[str] = None,
        git_dir: Optional[str] = None,
        migration_env: Optional[Mapping[str, str]] = None,
    ) -> PipelineOutcome:
        request = DeployRequest(
            app=app,
            commit_ref=commit_ref,
            branch=branch,
            context=context or ".",
            dockerfile=dockerfile,
        )

        def build(config: AppConfig) -> DeployPipeline:
            return DeployPipeline(
                request=request,
                config=config,
                image_builder=self.image_builder,
                migration_runner=self.migration_runner,
                retagger=self.retagger,
                stack_controller=self.stack_controller,
                health_gate=self.health_gate,
                run_cmd=self._run_cmd,
                console=console,
                git_exporter=self.git_exporter,
                git_dir=git_dir,
                migration_env=migration_env,
            )

        return self._execute("deploy", app, build)

    def rollback(self, app: str, target_ref: str) -> PipelineOutcome:
        def build(config: AppConfig) -> RollbackPipeline:
            return RollbackPipeline(
                target_ref=target_ref,
                config=config,
                retagger=self.retagger,
                stack_controller=self.stack_controller,
                health_gate=self.health_gate,
                run_cmd=self._run_cmd,
                console=console,
            )

        return self._execute("rollback", app, build)

    def _execute(self, kind: str, app: str, build_pipeline: Callable) -> PipelineOutcome:
        start = time.monotonic()
        try:
            config = self.load_config(app)
            pipeline = build_pipeline(config)
            with DeployLock(app, logger=logger, lock_dir=self.lock_dir):
                outcome = pipeline.run()
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            outcome = PipelineOutcome(
                kind=kind,
                app=app,
                error=exc,
                duration_seconds=time.monotonic() - start,
            )

        if not outcome.succeeded:
            self._report_failure(outcome)
        return outcome

    def _report_failure(self, outcome: PipelineOutcome):
        error = outcome.error
        if isinstance(error, ConfigurationError):
            hint = actionable_error(
                "config_invalid",
                app=outcome.app,
                path=self.config_loader.config_path(outcome.app),
            )
        elif isinstance(error, DeployInProgressError):
            lock = DeployLock(outcome.app, logger=logger, lock_dir=self.lock_dir)
            hint = actionable_error("deploy_in_progress", app=outcome.app, path=lock.lock_path)
        elif outcome.failed_stage in _STAGE_ERROR_CODES:
            hint = actionable_error(_STAGE_ERROR_CODES[outcome.failed_stage], app=outcome.app)
        else:
            return

        console.print(f"[yellow]{hint}[/yellow]")
        logger.info(hint)
