"""Single-flight wrapper around the speed test client."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor
from typing import Any, Dict, Optional

from .measurements.client import SpeedTestClient

LOGGER = logging.getLogger(__name__)

FAILURE_MESSAGE = "Speed test failed. Please try again."


class SpeedTestRunner:
    """Runs at most one speed test at a time and remembers the outcome.

    Starting while a test is in flight (or queued) is a no-op. Failures are
    logged and turned into ``last_error``; there is no automatic retry.
    """

    def __init__(self, client: SpeedTestClient):
        self.client = client
        self._lock = threading.Lock()
        self.last_error: Optional[str] = None
        self.last_record: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> Optional[Dict[str, Any]]:
        if not self._lock.acquire(blocking=False):
            LOGGER.info("Speed test already in progress, ignoring start request")
            return None
        return self._run_claimed()

    def submit_to(self, executor: Executor) -> bool:
        """Claim the runner now and let ``executor`` run the test.

        The claim is taken before the job is queued, so a second request
        arriving before the worker starts is refused. Returns False if a test
        is already in flight or queued.
        """
        if not self._lock.acquire(blocking=False):
            LOGGER.info("Speed test already in progress, ignoring start request")
            return False
        try:
            executor.submit(self._run_claimed)
        except Exception:
            self._lock.release()
            raise
        return True

    def _run_claimed(self) -> Optional[Dict[str, Any]]:
        try:
            self.last_error = None
            try:
                record = self.client.run()
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Speed test failed")
                self.last_error = FAILURE_MESSAGE
                return None
            self.last_record = record
            return record
        finally:
            self._lock.release()
