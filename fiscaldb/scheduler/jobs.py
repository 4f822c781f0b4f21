import logging

from ..core.errors import RouterError
from ..db.router import DatabaseRouter

logger = logging.getLogger(__name__)


async def prepare_current_fiscal_year(router: DatabaseRouter) -> str | None:
    """
    Job to open the database of the fiscal year the clock is now in.
    Runs at the June 1 rollover so the first request of the new year finds it ready.
    """
    logger.info("Executing job: prepare_current_fiscal_year")
    try:
        db = await router.current_database()
    except RouterError as e:
        logger.error(f"Error in prepare_current_fiscal_year job: {e}")
        return None
    logger.info("Current fiscal year database %s is ready.", db.label)
    return db.label


async def prepare_next_fiscal_year(router: DatabaseRouter) -> str | None:
    """
    Job to create the upcoming fiscal year's database ahead of the rollover.
    """
    logger.info("Executing job: prepare_next_fiscal_year")
    upcoming = router.current_fiscal_year().next()
    try:
        db = await router.database_for_year(upcoming.label)
    except RouterError as e:
        logger.error(f"Error in prepare_next_fiscal_year job: {e}")
        return None
    logger.info("Upcoming fiscal year database %s is ready.", db.label)
    return db.label
