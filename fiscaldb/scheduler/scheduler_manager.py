import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import utc

from ..db.router import DatabaseRouter
from . import jobs

logger = logging.getLogger(__name__)

PREPARE_NEXT_JOB_ID = "prepare_next_fiscal_year"
PREPARE_CURRENT_JOB_ID = "prepare_current_fiscal_year"


class SchedulerManager:
    """Manages the APScheduler instance that pre-opens fiscal-year databases."""

    def __init__(self, router: DatabaseRouter):
        self._router = router
        # Fiscal years roll over at midnight UTC, the same reference the router uses.
        self._scheduler = AsyncIOScheduler(timezone=utc)

    def start(self):
        """Starts the scheduler and adds the jobs."""
        try:
            self._scheduler.add_job(
                jobs.prepare_next_fiscal_year,
                "cron",
                month=5,
                day=31,
                hour=0,
                args=[self._router],
                id=PREPARE_NEXT_JOB_ID,
                replace_existing=True,
            )
            self._scheduler.add_job(
                jobs.prepare_current_fiscal_year,
                "cron",
                month=6,
                day=1,
                hour=0,
                minute=0,
                args=[self._router],
                id=PREPARE_CURRENT_JOB_ID,
                replace_existing=True,
            )

            self._scheduler.start()
            logger.info("Scheduler started with jobs.")
        except Exception as e:
            logger.error(f"Error starting scheduler: {e}")

    def shutdown(self):
        """Shuts down the scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown requested.")

    @property
    def instance(self) -> AsyncIOScheduler:
        return self._scheduler
