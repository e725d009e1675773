"""Domain errors for hldeploy."""

from typing import Optional


class DeployError(RuntimeError):
    """Raised when a deploy or rollback cannot continue safely."""


class ConfigurationError(DeployError):
    """App configuration is missing or fails validation."""


class InputValidationError(DeployError):
    """Malformed operator or config input (durations, key=value pairs, refs)."""


class CommandError(DeployError):
    """An external command could not be started or exited non-zero."""

    def __init__(self, message: str, cmd=None, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.cmd = list(cmd or [])
        self.returncode = returncode
        self.output = output


class BuildError(DeployError):
    """Image build-and-push failed."""


class MigrationError(DeployError):
    """The migration container exited non-zero."""


class RetagError(DeployError):
    """Promotion to the latest tag failed at pull, tag or push."""

    def __init__(self, message: str, sub_reason: str):
        super().__init__(message)
        self.sub_reason = sub_reason


class RestartError(DeployError):
    """The compose stack could not be pulled or recreated."""


class HealthTimeoutError(DeployError):
    """No healthy response was observed before the timeout elapsed."""

    def __init__(self, url: str, elapsed_seconds: float, attempts: int = 0):
        super().__init__(
            f"Health check timed out after {elapsed_seconds:.1f}s "
            f"({attempts} attempts): {url}"
        )
        self.url = url
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts


class DeployInProgressError(DeployError):
    """Another deploy or rollback already holds the lease for this app."""
