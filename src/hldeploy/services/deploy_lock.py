"""Per-app deploy lease backed by an exclusive file lock."""

import fcntl
import os
import tempfile
from typing import Optional

from hldeploy.errors import DeployInProgressError
from hldeploy.services.validation import validate_app_name


def default_lock_dir() -> str:
    return os.environ.get("HL_LOCK_DIR") or os.path.join(tempfile.gettempdir(), "hldeploy-locks")


class DeployLock:
    """At most one in-flight deploy or rollback per app on this host.

    Usage::

        with DeployLock("recipes", logger=logger):
            ...

    The lock is non-blocking: a second holder fails immediately. It is tied to
    the open file descriptor, so the kernel releases it if the process dies.
    """

    def __init__(self, app: str, logger, lock_dir: Optional[str] = None):
        self.app = validate_app_name(app)
        self.logger = logger
        self.lock_dir = lock_dir or default_lock_dir()
        self.lock_path = os.path.join(self.lock_dir, f"{self.app}.lock")
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self):
        if self._fd is not None:
            raise DeployInProgressError(f"Deploy lease for {self.app} is already held by this process.")

        os.makedirs(self.lock_dir, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise DeployInProgressError(
                f"Another deploy or rollback is already running for {self.app} (lock: {self.lock_path})."
            ) from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        self.logger.debug("Acquired deploy lease %s", self.lock_path)

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        self.logger.debug("Released deploy lease %s", self.lock_path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
