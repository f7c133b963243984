"""
SLA Background Scheduling
=========================

Runs the SLA sweep on an APScheduler interval trigger inside the
application's event loop.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from support_portal.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "sla_sweep"

SweepJob = Callable[[], Awaitable[None]]


class SLAScheduler:
    """
    Owns the AsyncIOScheduler for the periodic SLA sweep.

    Only one sweep runs at a time; a sweep that overruns the interval
    causes the next tick to be skipped rather than stacked.
    """

    def __init__(self, interval_seconds: int = 300, misfire_grace_seconds: int = 60):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self.misfire_grace_seconds = misfire_grace_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self, job: SweepJob) -> None:
        if self.is_running:
            logger.warning("SLA scheduler already running")
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self._guarded(job),
            IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="SLA sweep",
            misfire_grace_time=self.misfire_grace_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    @staticmethod
    def _guarded(job: SweepJob) -> SweepJob:
        async def run() -> None:
            try:
                await job()
            except Exception:
                # Keep the schedule alive; the next tick retries
                logger.exception("SLA sweep failed")
        return run

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(SWEEP_JOB_ID)
        return job.next_run_time if job else None
