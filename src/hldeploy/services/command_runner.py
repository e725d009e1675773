"""Subprocess execution service for hldeploy."""

import os
import subprocess
from typing import List, Mapping, Optional

from hldeploy.errors import CommandError


class CommandRunner:
    """Runs external commands with consistent error handling.

    Output is inherited from the parent process unless ``capture_output`` is
    set, so long-running docker commands stream straight to the operator.
    Commands are never retried.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None, subprocess_module=subprocess):
        self.logger = logger
        self.default_timeout = default_timeout
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s%s", cmd_str, f" (cwd={cwd})" if cwd else "")

        effective_timeout = timeout if timeout is not None else self.default_timeout
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)

        try:
            result = self.subprocess.run(
                cmd,
                cwd=cwd,
                env=run_env,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise CommandError(
                f"Required command not found: {cmd[0]}. Please install it and try again.",
                cmd=cmd,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                f"Command timed out after {effective_timeout}s: {cmd_str}",
                cmd=cmd,
            ) from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute command: {cmd_str}. {exc}", cmd=cmd) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise CommandError(message, cmd=cmd, returncode=result.returncode, output=stderr)

        # callers passing check=False inspect returncode themselves
        self.logger.debug(message)
        return result
