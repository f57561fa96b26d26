"""Recurring auto-test orchestration."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig
from .runner import SpeedTestRunner

LOGGER = logging.getLogger(__name__)

JOB_ID = "auto-speedtest"


class AutoTestScheduler:
    """Periodic speed tests that can be switched on and off at runtime.

    Enabling and disabling are idempotent. Disabling only cancels the pending
    recurrence; a test already in flight finishes normally.
    """

    def __init__(
        self,
        config: AppConfig,
        runner: SpeedTestRunner,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.interval_minutes = config.autotest.interval_minutes
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.scheduler.get_job(JOB_ID) is not None

    @property
    def next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def start(self) -> None:
        if self.scheduler.running:
            LOGGER.warning("Scheduler already started, ignoring duplicate start request")
            return
        self.scheduler.start()
        LOGGER.info("Scheduler started (auto-test %s)", "enabled" if self.enabled else "disabled")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def enable(self) -> bool:
        """Schedule the recurring test. Returns False if it was already scheduled."""
        with self._lock:
            if self.enabled:
                return False
            self.scheduler.add_job(
                self._run_cycle,
                trigger=IntervalTrigger(minutes=self.interval_minutes),
                id=JOB_ID,
                max_instances=1,
                coalesce=True,
            )
        LOGGER.info("Auto-test enabled every %s minutes", self.interval_minutes)
        return True

    def disable(self) -> bool:
        """Cancel the pending recurrence. Returns False if nothing was scheduled."""
        with self._lock:
            if not self.enabled:
                return False
            self.scheduler.remove_job(JOB_ID)
        LOGGER.info("Auto-test disabled")
        return True

    def _run_cycle(self) -> None:
        LOGGER.info("Starting scheduled speed test at %s", datetime.now(timezone.utc).isoformat())
        if self.runner.run_once() is None and self.runner.last_error:
            LOGGER.warning("Scheduled speed test did not record a result: %s", self.runner.last_error)
