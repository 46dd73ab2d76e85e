"""
bggcache entry point
Runs the BoardGameGeek cache: database, request queue and maintenance jobs
"""

import asyncio
import sys

from loguru import logger

from bggcache.datastore.engine import close_db, get_session_factory, init_db
from bggcache.services.catalog import create_catalog
from bggcache.services.errors import ServiceError
from bggcache.services.scheduler import MaintenanceScheduler
from bggcache.settings import global_settings


async def main() -> None:
    """Main function"""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level)
    logger.info("Starting bggcache...")

    catalog = None
    scheduler = None
    try:
        logger.info("Initializing database...")
        await init_db()
        logger.info("Database initialized successfully")

        session_factory = get_session_factory()
        catalog = create_catalog(session_factory)

        logger.info("Starting maintenance scheduler...")
        scheduler = MaintenanceScheduler(catalog.sync, session_factory)
        scheduler.start()

        logger.info("Performing initial hot list sync...")
        try:
            hot = await catalog.get_or_sync_hot_list()
            logger.info(f"Hot list ready with {len(hot)} games")
        except ServiceError as e:
            logger.warning(f"Initial hot list sync failed: {e}")

        logger.info("bggcache is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        if scheduler is not None and scheduler.is_running():
            logger.info("Stopping maintenance scheduler...")
            scheduler.stop()

        if catalog is not None:
            logger.info("Waiting for in-flight syncs...")
            await catalog.sync.drain()
            stats = catalog.sync.queue.get_stats().to_dict()
            logger.info(f"Closing request queue, stats: {stats}")
            await catalog.close()

        logger.info("Closing database connections...")
        await close_db()

        logger.info("bggcache stopped")


if __name__ == "__main__":
    asyncio.run(main())
