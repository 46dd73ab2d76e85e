"""
Maintenance scheduler.
Uses APScheduler to prune the request ledger and, optionally, keep the hot
list warm.
"""

from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bggcache.datastore.engine import session_scope
from bggcache.datastore.repositories import RequestLogRepository
from bggcache.services.sync import Synchronizer
from bggcache.settings import global_settings
from bggcache.utils import logged_job, utcnow


class MaintenanceScheduler:
    """Periodic housekeeping jobs"""

    def __init__(
        self,
        synchronizer: Synchronizer,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.synchronizer = synchronizer
        self._session_factory = session_factory
        self._is_running = False

    @logged_job
    async def prune_ledger_job(self) -> int:
        """Drop ledger rows older than the retention period."""
        return await self.prune_ledger()

    async def prune_ledger(self, retention_minutes: int | None = None) -> int:
        retention = timedelta(
            minutes=retention_minutes or global_settings.ledger_retention_minutes
        )
        # Rows inside the throttling window are still counted by the queue
        window = timedelta(seconds=global_settings.rate_limit_window_seconds)
        retention = max(retention, window)
        async with session_scope(self._session_factory) as session:
            deleted = await RequestLogRepository(session).prune(utcnow() - retention)
        logger.info(f"Request ledger pruned: {deleted} entries removed")
        return deleted

    @logged_job
    async def refresh_hot_list_job(self) -> None:
        games = await self.synchronizer.sync_hot_list()
        logger.info(f"Scheduled hot list refresh stored {len(games)} games")

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Maintenance scheduler is already running")
            return

        interval_minutes = global_settings.maintenance_interval_minutes
        self.scheduler.add_job(
            self.prune_ledger_job,
            trigger="interval",
            minutes=interval_minutes,
            id="ledger_prune_job",
            name="Request Ledger Pruner",
            replace_existing=True,
        )

        hot_minutes = global_settings.hot_list_refresh_minutes
        if hot_minutes > 0:
            self.scheduler.add_job(
                self.refresh_hot_list_job,
                trigger="interval",
                minutes=hot_minutes,
                id="hot_list_refresh_job",
                name="Hot List Refresher",
                replace_existing=True,
            )

        self.scheduler.start()
        self._is_running = True

        logger.info(
            f"Maintenance scheduler started: pruning every {interval_minutes} minutes"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if not self._is_running:
            logger.warning("Maintenance scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Maintenance scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running
