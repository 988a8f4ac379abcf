import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_fixed

from feedsync.core.config import settings
from feedsync.core.exceptions import FetchError, OwnershipError, ParseError, SyncError
from feedsync.models import Feed
from feedsync.services.feed_fetcher import FeedFetcher, FetchedDocument
from feedsync.services.feed_parser import FeedItem, FeedParser
from feedsync.services.identity import resolve_identity
from feedsync.services.read_state_store import ReadStateStore

logger = logging.getLogger(__name__)


@dataclass
class AnnotatedFeedItem:
    """A parsed item together with its current read state"""

    item: FeedItem
    identity: str
    tracked_article_id: UUID
    is_read: bool
    read_at: Optional[datetime]
    is_new: bool


@dataclass
class SyncResult:
    feed_id: UUID
    feed_title: str
    items: List[AnnotatedFeedItem]
    new_count: int
    existing_count: int
    synced_at: datetime


@dataclass
class RefreshResult:
    feeds_refreshed: int = 0
    total_added: int = 0
    total_existing: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, FetchError) and error.is_transient


class FeedSyncService:
    """
    Fetch -> parse -> resolve identities -> reconcile with the read-state store.

    Collaborators are injected so tests can substitute fakes. A failed fetch
    or parse raises SyncError before the store is touched.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        store: ReadStateStore,
        session_factory: async_sessionmaker,
        retry_delay: Optional[float] = None,
        concurrency: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.store = store
        self.session_factory = session_factory
        self.retry_delay = settings.SYNC_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.concurrency = concurrency or settings.SYNC_CONCURRENCY

    async def sync(self, feed: Feed, user_id: UUID) -> SyncResult:
        """
        Synchronize one feed for one user.

        Args:
            feed: Feed owned by user_id
            user_id: ID of the user whose read state is reconciled

        Returns:
            SyncResult with every resolvable item in document order

        Raises:
            SyncError: fetch or parse failed; nothing was written
            OwnershipError: feed belongs to another user
        """
        if feed.user_id != user_id:
            logger.error(f"User {user_id} attempted to sync feed {feed.id} owned by {feed.user_id}")
            raise OwnershipError("feed", feed.id, user_id)

        fetched = await self._fetch(feed.url)

        try:
            document = self.parser.parse(fetched.content, fetched.content_type)
        except ParseError as e:
            logger.warning(f"Sync of {feed.url} failed during parse: {e}")
            raise SyncError(SyncError.PHASE_PARSE, e, feed.url) from e

        resolved = []
        for item in document.items:
            identity = resolve_identity(item)
            if identity is None:
                logger.debug(f"Dropping untrackable item without guid, link or title in {feed.url}")
                continue
            resolved.append((item, identity))

        tracked = {row.guid: row for row in await self.store.get_tracked(feed.id, user_id)}
        already_tracked = {identity for _, identity in resolved if identity in tracked}

        inserted = set()
        for item, identity in resolved:
            if identity in tracked:
                continue
            row, created = await self.store.insert_if_absent(feed.id, user_id, identity, item)
            tracked[identity] = row
            if created:
                inserted.add(identity)

        items = []
        for item, identity in resolved:
            row = tracked[identity]
            items.append(
                AnnotatedFeedItem(
                    item=item,
                    identity=identity,
                    tracked_article_id=row.id,
                    is_read=row.is_read,
                    read_at=row.read_at,
                    is_new=identity in inserted,
                )
            )

        synced_at = datetime.now(timezone.utc)
        await self._mark_synced(feed.id, synced_at)

        logger.info(
            f"Synced {feed.url}: {len(items)} items, {len(inserted)} new, "
            f"{len(already_tracked)} already tracked"
        )
        return SyncResult(
            feed_id=feed.id,
            feed_title=document.title or feed.title,
            items=items,
            new_count=len(inserted),
            existing_count=len(already_tracked),
            synced_at=synced_at,
        )

    async def _fetch(self, url: str) -> FetchedDocument:
        """Fetch, retrying once on transient network errors only"""
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_transient),
                stop=stop_after_attempt(2),
                wait=wait_fixed(self.retry_delay),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    fetched = await self.fetcher.fetch(url)
        except FetchError as e:
            logger.warning(f"Sync of {url} failed during fetch: {e}")
            raise SyncError(SyncError.PHASE_FETCH, e, url) from e
        return fetched

    async def _mark_synced(self, feed_id: UUID, synced_at: datetime) -> None:
        async with self.session_factory() as db:
            await db.execute(update(Feed).where(Feed.id == feed_id).values(last_synced_at=synced_at))
            await db.commit()

    async def refresh_all(self, user_id: UUID) -> RefreshResult:
        """
        Sync every feed of a user, a bounded number at a time.

        A failing feed never aborts the others; its error is collected.
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(Feed)
                .where(Feed.user_id == user_id)
                .order_by(Feed.last_synced_at.asc().nulls_first())
            )
            feeds = result.scalars().all()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(feed: Feed) -> SyncResult:
            async with semaphore:
                return await self.sync(feed, user_id)

        outcomes = await asyncio.gather(*(run(feed) for feed in feeds), return_exceptions=True)

        summary = RefreshResult()
        for feed, outcome in zip(feeds, outcomes):
            if isinstance(outcome, SyncError):
                summary.errors.append(f"{feed.title}: {outcome.user_message}")
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            elif isinstance(outcome, Exception):
                logger.error(f"Unexpected error refreshing feed {feed.id} ({feed.url}): {outcome!r}")
                summary.errors.append(f"{feed.title}: unexpected error")
            else:
                summary.feeds_refreshed += 1
                summary.total_added += outcome.new_count
                summary.total_existing += outcome.existing_count

        logger.info(
            f"Refreshed {summary.feeds_refreshed}/{len(feeds)} feeds for user {user_id}: "
            f"{summary.total_added} new, {len(summary.errors)} error(s)"
        )
        return summary
