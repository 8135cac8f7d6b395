"""Scheduler manager for background jobs."""

import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from mizuhanome.config import JST, settings
from mizuhanome.provider.client import ProviderClient, ProviderError

logger = logging.getLogger(__name__)

SESSION_REFRESH_JOB = "provider_session_refresh"
DAILY_START_JOB = "provider_daily_start"


class SchedulerManager:
    """Owns the AsyncIOScheduler that keeps the provider session alive."""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=JST)
        self._started = False

    async def start(self) -> None:
        """Start the scheduler."""
        if not self._started:
            self.scheduler.start()
            self._started = True
            logger.info("Scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._started:
            self.scheduler.shutdown(wait=True)
            self._started = False
            logger.info("Scheduler stopped")

    def add_job(
        self,
        job_id: str,
        func: Callable,
        trigger_type: str,
        args: Optional[list] = None,
        **trigger_kwargs,
    ) -> None:
        """Register ``func`` under ``job_id``, replacing any job with that id.

        ``trigger_type`` is "interval" or "cron"; cron fields are read in JST.
        """
        if trigger_type == "interval":
            trigger = IntervalTrigger(**trigger_kwargs)
        elif trigger_type == "cron":
            trigger = CronTrigger(timezone=JST, **trigger_kwargs)
        else:
            raise ValueError(f"Unknown trigger type: {trigger_type}")

        self.scheduler.add_job(
            func,
            trigger,
            id=job_id,
            args=args or [],
            replace_existing=True,
            misfire_grace_time=60,
        )
        logger.info(f"Scheduled {job_id} ({trigger})")

    def setup_provider_jobs(self, provider: ProviderClient) -> None:
        """Keep the provider session alive.

        - Every ``session_refresh_minutes``: refresh the session
        - Daily at the configured start time: open a fresh session
        """
        self.add_job(
            SESSION_REFRESH_JOB,
            refresh_session,
            trigger_type="interval",
            args=[provider],
            minutes=settings.session_refresh_minutes,
        )
        self.add_job(
            DAILY_START_JOB,
            start_session,
            trigger_type="cron",
            args=[provider],
            hour=settings.daily_start_hour,
            minute=settings.daily_start_minute,
        )


async def refresh_session(provider: ProviderClient) -> None:
    """Refresh the provider session, re-authenticating if it has lapsed."""
    try:
        if provider.session:
            await provider.refresh()
        else:
            await provider.authenticate()
    except ProviderError as e:
        logger.warning(f"Session refresh failed, re-authenticating: {e}")
        provider.session = None
        try:
            await provider.authenticate()
        except ProviderError as e2:
            logger.error(f"Re-authentication failed: {e2}")


async def start_session(provider: ProviderClient) -> None:
    """Daily start: drop any stale session and open a new one."""
    logger.info("Daily start: opening provider session")
    try:
        await provider.destroy()
    except ProviderError as e:
        logger.debug(f"Ignoring failed destroy of stale session: {e}")
    try:
        await provider.authenticate()
    except ProviderError as e:
        logger.error(f"Daily authentication failed: {e}")
