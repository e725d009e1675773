"""Compose stack restart services for hldeploy."""

import os
from pathlib import Path
from typing import Callable, List, Optional

from hldeploy.errors import CommandError, RestartError

PRIMARY_COMPOSE_FILE = "compose.yml"
# (command prefix, version probe)
COMPOSE_CANDIDATES = (
    (["docker", "compose"], ["version"]),
    (["docker-compose"], ["--version"]),
)


class StackControllerService:
    """Discovers an app's compose files and pulls/recreates the stack."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def get_docker_compose_cmd(self, run_cmd: Callable) -> List[str]:
        """Return ``docker compose`` (v2) if it answers, else ``docker-compose`` (v1)."""
        for candidate, version_args in COMPOSE_CANDIDATES:
            try:
                result = run_cmd(candidate + version_args, check=False, capture_output=True)
            except CommandError as exc:
                self.logger.debug("%s unavailable: %s", " ".join(candidate), exc)
                continue
            if result.returncode == 0:
                return list(candidate)

        raise RestartError(
            "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
            "or v1 (`docker-compose`) and try again."
        )

    def discover_compose_files(self, app_dir: str) -> List[str]:
        """Return ``compose.yml`` followed by every ``compose.<name>.yml`` fragment."""
        root = Path(app_dir)
        primary = root / PRIMARY_COMPOSE_FILE
        if not primary.is_file():
            raise RestartError(f"Compose file not found: {primary}")

        fragments = sorted(
            path.name
            for path in root.glob("compose.*.yml")
            if path.is_file() and path.name != PRIMARY_COMPOSE_FILE
        )
        return [PRIMARY_COMPOSE_FILE] + fragments

    def ensure_network(self, network: str, run_cmd: Callable):
        try:
            result = run_cmd(
                ["docker", "network", "inspect", network],
                check=False,
                capture_output=True,
            )
        except CommandError as exc:
            raise RestartError(f"Could not inspect docker network {network}.\n{exc}") from exc
        if result.returncode == 0:
            return

        self.logger.info("Creating missing docker network %s", network)
        try:
            run_cmd(["docker", "network", "create", "--driver", "bridge", network], capture_output=True)
        except CommandError as exc:
            raise RestartError(f"Could not create docker network {network}.\n{exc}") from exc

    def restart(
        self,
        app_dir: str,
        network: str,
        run_cmd: Callable,
        compose_cmd: Optional[List[str]] = None,
        project_name: Optional[str] = None,
    ) -> List[str]:
        if not os.path.isdir(app_dir):
            raise RestartError(f"App directory not found: {app_dir}")

        compose_files = self.discover_compose_files(app_dir)
        if len(compose_files) > 1:
            self.logger.info("Including accessory fragments: %s", ", ".join(compose_files[1:]))

        self.ensure_network(network, run_cmd)

        base_cmd = list(compose_cmd or self.get_docker_compose_cmd(run_cmd))
        if project_name:
            base_cmd += ["-p", project_name]
        for file_name in compose_files:
            base_cmd += ["-f", file_name]

        for sub_step, args in (("pull", ["pull"]), ("up", ["up", "-d", "--remove-orphans"])):
            try:
                run_cmd(base_cmd + args, cwd=app_dir)
            except CommandError as exc:
                raise RestartError(f"docker compose {sub_step} failed in {app_dir}.\n{exc}") from exc

        return compose_files
