"""HTTP health gate for hldeploy."""

import time

import requests

from hldeploy.errors import HealthTimeoutError, InputValidationError


class HealthGateService:
    """Polls a URL until one healthy response is observed or time runs out.

    Any status in [200, 400) is healthy. Transport errors, other statuses and
    per-request timeouts count as unhealthy. The gate never succeeds without
    an explicit healthy observation.
    """

    REQUEST_TIMEOUT_SECONDS = 3.0

    def __init__(self, logger, console, requests_module=requests, clock=time.monotonic, sleep=time.sleep):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.clock = clock
        self.sleep = sleep

    def probe(self, url: str) -> bool:
        try:
            response = self.requests.get(
                url,
                timeout=self.REQUEST_TIMEOUT_SECONDS,
                allow_redirects=False,
            )
        except self.requests.RequestException as exc:
            self.logger.debug("Health probe error for %s: %s", url, exc)
            return False

        try:
            status = response.status_code
        finally:
            response.close()

        self.logger.debug("Health probe %s -> %s", url, status)
        return 200 <= status < 400

    def wait(self, url: str, interval_ms: int, timeout_ms: int) -> int:
        """Block until healthy; returns the number of polls made."""
        if interval_ms <= 0 or timeout_ms <= 0:
            raise InputValidationError("Health interval and timeout must be positive durations.")

        interval = interval_ms / 1000.0
        timeout = timeout_ms / 1000.0
        start = self.clock()
        attempts = 0

        while True:
            attempts += 1
            if self.probe(url):
                self.logger.info(
                    "%s healthy after %s attempt(s) in %.1fs", url, attempts, self.clock() - start
                )
                return attempts

            remaining = timeout - (self.clock() - start)
            if remaining <= 0:
                break
            self.sleep(min(interval, remaining))
            if self.clock() - start >= timeout:
                break

        raise HealthTimeoutError(url, self.clock() - start, attempts)
