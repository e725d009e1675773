"""Multi-platform image build-and-push for hldeploy."""

import os
from typing import Callable, List, Optional, Sequence, Union

from hldeploy.errors import BuildError, CommandError, InputValidationError


class ImageBuilderService:
    """Drives a single ``docker buildx build --push`` for every requested tag."""

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def build_command(
        self,
        context: str,
        tags: Sequence[str],
        dockerfile: Optional[str] = None,
        platforms: Optional[Union[str, Sequence[str]]] = None,
    ) -> List[str]:
        cmd = ["docker", "buildx", "build", "--push"]
        platform_arg = self._platform_arg(platforms)
        if platform_arg:
            cmd += ["--platform", platform_arg]
        for tag in tags:
            cmd += ["-t", tag]
        if dockerfile:
            cmd += ["--file", dockerfile]
        cmd.append(context)
        return cmd

    def build_and_push(
        self,
        context: str,
        tags: Sequence[str],
        run_cmd: Callable,
        dockerfile: Optional[str] = None,
        platforms: Optional[Union[str, Sequence[str]]] = None,
    ):
        if not tags:
            raise InputValidationError("At least one image tag is required to build.")
        if not os.path.isdir(context):
            raise InputValidationError(f"Build context not found: {context}")
        if dockerfile and not os.path.isfile(dockerfile):
            raise InputValidationError(f"Dockerfile not found at: {dockerfile}")

        cmd = self.build_command(context, tags, dockerfile=dockerfile, platforms=platforms)
        self.logger.info("Building %s from %s", ", ".join(tags), context)

        try:
            run_cmd(cmd)
        except CommandError as exc:
            # buildx may already have pushed some tags; nothing is promoted here.
            raise BuildError(f"docker buildx build failed for {', '.join(tags)}.\n{exc}") from exc

    @staticmethod
    def _platform_arg(platforms) -> str:
        if not platforms:
            return ""
        if isinstance(platforms, str):
            return platforms.strip()
        return ",".join(item.strip() for item in platforms if item.strip())
