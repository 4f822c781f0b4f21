import asyncio
import logging
import signal
import sys

from fiscaldb.config import get_settings
from fiscaldb.core.errors import ConnectionFailure
from fiscaldb.db.router import create_router
from fiscaldb.scheduler.scheduler_manager import SchedulerManager


async def main() -> int:
    """Open the fiscal-year databases and keep them available until signalled."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logger = logging.getLogger(__name__)

    router = create_router(settings)
    try:
        await router.connect()
        db = await router.current_database()
    except ConnectionFailure as e:
        logger.error("Could not open the fiscal year database: %s", e)
        await router.shutdown()
        return 1
    logger.info("Serving fiscal year %s from %s", db.label, settings.db.path)

    scheduler = SchedulerManager(router) if settings.scheduler.enabled else None
    if scheduler is not None:
        scheduler.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            pass

    try:
        await stop.wait()
        logger.info("Stop signal received")
    finally:
        if scheduler is not None:
            scheduler.shutdown()
        await router.shutdown()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("Stopped.")
