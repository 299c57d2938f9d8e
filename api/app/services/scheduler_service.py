"""Scheduler service for periodic case maintenance.

This module runs background jobs with APScheduler. Each job opens its own
database session and commits its work independently of request handling.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import get_settings
from app.database import AsyncSessionLocal
from app.services.sla_service import sla_service

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for managing scheduled jobs."""

    def __init__(self, session_factory=None):
        self.scheduler: AsyncIOScheduler | None = None
        self._initialized = False
        self._session_factory = session_factory or AsyncSessionLocal

    def start(self) -> None:
        """Start the scheduler."""
        if self._initialized:
            return

        settings = get_settings()
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )

        self.scheduler.add_job(
            self.sweep_sla_breaches,
            IntervalTrigger(minutes=settings.sla_sweep_interval_minutes),
            id="sla_breach_sweep",
            name="Flag cases past their SLA deadline",
            replace_existing=True,
        )

        self.scheduler.start()
        self._initialized = True
        logger.info("Scheduler service started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._initialized = False
            logger.info("Scheduler service stopped")

    async def sweep_sla_breaches(self) -> int:
        """Run one SLA sweep; returns the number of cases flagged."""
        try:
            async with self._session_factory() as db:
                try:
                    breached = await sla_service.mark_breaches(db)
                    await db.commit()
                    return len(breached)
                except Exception:
                    await db.rollback()
                    raise

        except Exception as e:
            logger.error(f"Error sweeping SLA breaches: {e}")
            return 0


# Singleton instance
scheduler_service = SchedulerService()
