"""Daily trigger for the reminder sweep."""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import Config
from ..models import SweepSummary
from ..services.reminders import ReminderService

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "event-reminder-sweep"


def should_run_startup_sweep(config: Config) -> bool:
    """Run one sweep at boot outside production unless explicitly skipped."""

    return not config.is_production and not config.reminder.skip_initial


class ReminderScheduler:
    """Own the APScheduler instance that fires the daily sweep."""

    def __init__(
        self,
        *,
        config: Config,
        reminder_service: ReminderService,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._config = config
        self._reminders = reminder_service
        self._scheduler = scheduler or AsyncIOScheduler(timezone=config.timezone)
        self.last_summary: Optional[SweepSummary] = None

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def register(self) -> None:
        self._scheduler.add_job(
            self._sweep_job,
            trigger=CronTrigger(
                hour=self._config.reminder.cron_hour,
                minute=self._config.reminder.cron_minute,
                timezone=self._config.timezone,
            ),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

    async def start(self) -> None:
        self.register()
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "Scheduler started: event reminders daily at %02d:%02d",
            self._config.reminder.cron_hour,
            self._config.reminder.cron_minute,
        )
        if should_run_startup_sweep(self._config):
            logger.info("Running initial event reminder sweep (%s mode)", self._config.environment)
            await self.trigger_now()
        else:
            logger.info(
                "Skipping initial reminder sweep (production=%s, skip=%s)",
                self._config.is_production,
                self._config.reminder.skip_initial,
            )

    async def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def trigger_now(self, *, today: date | None = None, force: bool = False) -> SweepSummary:
        """Run a sweep immediately, outside the daily schedule."""

        summary = await self._reminders.run_sweep(today, force=force)
        self.last_summary = summary
        return summary

    async def _sweep_job(self) -> None:
        await self.trigger_now()
