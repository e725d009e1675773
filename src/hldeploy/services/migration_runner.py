"""One-shot migration runs against a not-yet-promoted image."""

import os
from typing import Callable, List, Mapping, Optional, Sequence

from hldeploy.errors import CommandError, InputValidationError, MigrationError
from hldeploy.services.tag_planner import LATEST_TAG, tag_of


class MigrationRunnerService:
    """Runs the app's migration command in an ephemeral container.

    The image must be addressed by its commit tag. Readiness of the database
    is not checked first; an unreachable dependency surfaces as a failed run.
    """

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def build_command(
        self,
        image_ref: str,
        network: str,
        command: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None,
    ) -> List[str]:
        cmd = ["docker", "run", "--rm"]
        for key, value in (env or {}).items():
            cmd += ["-e", f"{key}={value}"]
        if env_file:
            cmd += ["--env-file", env_file]
        cmd += ["--network", network, image_ref]
        cmd += list(command)
        return cmd

    def run(
        self,
        image_ref: str,
        network: str,
        command: Sequence[str],
        run_cmd: Callable,
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None,
        cwd: Optional[str] = None,
    ):
        tag = tag_of(image_ref)
        if not tag or tag == LATEST_TAG:
            raise InputValidationError(
                f"Migrations must run against a commit-tagged image, not '{image_ref}'."
            )
        if not command:
            raise InputValidationError("Migration command must not be empty.")

        if env_file and not os.path.isfile(env_file):
            self.logger.debug("No env file at %s; running migrations without it.", env_file)
            env_file = None

        cmd = self.build_command(image_ref, network, command, env=env, env_file=env_file)
        self.logger.info("Running migrations in %s on network %s", image_ref, network)

        try:
            run_cmd(cmd, cwd=cwd if cwd and os.path.isdir(cwd) else None)
        except CommandError as exc:
            raise MigrationError(f"Migrations failed in {image_ref}.\n{exc}") from exc
