"""Periodic sync driver built on APScheduler.

At most one cycle runs at a time. A tick that arrives while a cycle is still
running is skipped, and a cycle that exceeds its time limit is abandoned so
the next tick can start fresh.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailsift.config import Settings
from mailsift.sync.service import SyncReport, SyncService

logger = structlog.get_logger()

JOB_ID = "mailsift_sync"


def _job_listener(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error("sync_job_failed", job_id=event.job_id, error=str(event.exception))
    else:
        logger.debug("sync_job_executed", job_id=event.job_id)


class SyncScheduler:
    """Runs ``SyncService.run_cycle`` on a fixed interval in a background thread."""

    def __init__(self, service: SyncService, settings: Settings | None = None) -> None:
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._service = service
        self._cycle_lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_once(self) -> SyncReport | None:
        """Run a single cycle on the calling thread.

        Returns:
            The cycle's report, or None if another cycle was in progress or
            this one ran past ``sync_cycle_timeout_seconds``.
        """

        if not self._cycle_lock.acquire(blocking=False):
            logger.info("sync_cycle_skipped_in_progress")
            return None

        try:
            return asyncio.run(
                asyncio.wait_for(
                    self._service.run_cycle(),
                    timeout=self.settings.sync_cycle_timeout_seconds,
                )
            )
        except asyncio.TimeoutError:
            logger.error(
                "sync_cycle_timed_out",
                timeout_seconds=self.settings.sync_cycle_timeout_seconds,
            )
            return None
        finally:
            self._cycle_lock.release()

    def start(self, *, run_immediately: bool = True) -> None:
        """Start the background scheduler. Calling it twice is a no-op."""

        if self.running:
            logger.warning("sync_scheduler_already_running")
            return

        # An explicit next_run_time of None would add the job paused.
        first_run = {"next_run_time": datetime.now(timezone.utc)} if run_immediately else {}

        scheduler = BackgroundScheduler(timezone=timezone.utc)
        scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        scheduler.add_job(
            self.run_once,
            IntervalTrigger(seconds=self.settings.sync_interval_seconds),
            id=JOB_ID,
            name="Mailbox sync",
            coalesce=True,
            max_instances=1,
            replace_existing=True,
            **first_run,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("sync_scheduler_started", interval_seconds=self.settings.sync_interval_seconds)

    def stop(self, *, wait: bool = True) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("sync_scheduler_stopped")
