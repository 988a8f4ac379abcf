import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from feedsync.core.config import settings
from feedsync.models import Feed
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.feed_parser import FeedParser
from feedsync.services.feed_sync import FeedSyncService
from feedsync.services.read_state_store import ReadStateStore

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler to refresh every user's feeds periodically"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        interval_minutes: Optional[int] = None,
        fetcher_factory: Callable[[], FeedFetcher] = FeedFetcher,
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory
        self.fetcher_factory = fetcher_factory
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if not self.is_running:
            self.scheduler.add_job(
                self.refresh_all_users,
                'interval',
                minutes=self.interval_minutes,
                id='refresh_all_feeds',
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self.scheduler.start()
            self.is_running = True
            logger.info(f"Sync Scheduler started. Refreshing feeds every {self.interval_minutes} minutes")

    def shutdown(self):
        """Shutdown the scheduler"""
        if self.is_running:
            self.scheduler.shutdown()
            self.is_running = False
            logger.info("Sync Scheduler stopped")

    async def refresh_all_users(self) -> int:
        """
        Run refresh_all for every user that owns at least one feed.

        Returns:
            Number of users refreshed
        """
        logger.info("Starting feed refresh cycle")

        async with self.session_factory() as db:
            result = await db.execute(select(Feed.user_id).distinct())
            user_ids = result.scalars().all()

        logger.info(f"Found {len(user_ids)} users with feeds to refresh")

        async with self.fetcher_factory() as fetcher:
            sync_service = FeedSyncService(
                fetcher=fetcher,
                parser=FeedParser(),
                store=ReadStateStore(self.session_factory),
                session_factory=self.session_factory,
            )

            refreshed = 0
            for user_id in user_ids:
                try:
                    summary = await sync_service.refresh_all(user_id)
                except Exception as e:
                    logger.error(f"Error refreshing feeds for user {user_id}: {e}")
                    continue

                refreshed += 1
                for error in summary.errors:
                    logger.warning(f"Refresh error for user {user_id}: {error}")

        logger.info(f"Feed refresh cycle completed for {refreshed}/{len(user_ids)} users")
        return refreshed


# Global scheduler instance
_scheduler_instance: Optional[SyncScheduler] = None


def get_scheduler(session_factory: async_sessionmaker) -> SyncScheduler:
    """Get or create the global scheduler instance"""
    global _scheduler_instance
    if _scheduler_instance is None:
        _scheduler_instance = SyncScheduler(session_factory)
    return _scheduler_instance
