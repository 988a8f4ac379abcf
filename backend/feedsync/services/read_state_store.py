"""
Read-state store: per-user, per-feed tracking of which feed items were seen
and read.

Every operation is scoped by user id. Touching a feed or a tracked article
owned by someone else raises OwnershipError; it is never silently ignored.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedsync.core.exceptions import ArticleNotFoundError, FeedNotFoundError, OwnershipError
from feedsync.models import Feed, TrackedArticle
from feedsync.services.feed_parser import FeedItem

logger = logging.getLogger(__name__)

UNIQUE_KEY = ["feed_id", "user_id", "guid"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReadStateStore:
    """CRUD over TrackedArticle rows, constructed with an explicit session factory"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _require_feed_owner(self, db: AsyncSession, feed_id: UUID, user_id: UUID) -> Feed:
        feed = await db.get(Feed, feed_id)
        if not feed:
            raise FeedNotFoundError(f"Feed {feed_id} not found")
        if feed.user_id != user_id:
            logger.error(f"User {user_id} attempted to access read state of feed {feed_id} owned by {feed.user_id}")
            raise OwnershipError("feed", feed_id, user_id)
        return feed

    async def get_tracked(self, feed_id: UUID, user_id: UUID) -> List[TrackedArticle]:
        """All tracked rows for one feed of one user, in a single query"""
        async with self.session_factory() as db:
            await self._require_feed_owner(db, feed_id, user_id)
            result = await db.execute(
                select(TrackedArticle).where(
                    TrackedArticle.feed_id == feed_id,
                    TrackedArticle.user_id == user_id,
                )
            )
            return list(result.scalars().all())

    async def insert_if_absent(
        self,
        feed_id: UUID,
        user_id: UUID,
        guid: str,
        item: Optional[FeedItem] = None,
    ) -> Tuple[TrackedArticle, bool]:
        """
        Insert an unread row for (feed_id, user_id, guid) unless one exists.

        The insert is committed on its own. A concurrent insert of the same
        key is a no-op, never an error.

        Returns:
            (row, created) where created is False when the row already existed
        """
        values = {
            "id": uuid4(),
            "feed_id": feed_id,
            "user_id": user_id,
            "guid": guid,
            "is_read": False,
            "first_seen_at": _utc_now(),
            "title": "",
        }
        if item is not None:
            values.update(
                title=item.title,
                link=item.link,
                author=item.author,
                pub_date=item.published_at,
                content_snippet=item.content_snippet,
                content=item.content,
                image_url=item.image_url,
            )

        async with self.session_factory() as db:
            await self._require_feed_owner(db, feed_id, user_id)
            created = await self._insert_ignoring_duplicate(db, values)

            result = await db.execute(
                select(TrackedArticle).where(
                    TrackedArticle.feed_id == feed_id,
                    TrackedArticle.user_id == user_id,
                    TrackedArticle.guid == guid,
                )
            )
            return result.scalar_one(), created

    @staticmethod
    async def _insert_ignoring_duplicate(db: AsyncSession, values: dict) -> bool:
        dialect = db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert

            stmt = insert(TrackedArticle).values(**values).on_conflict_do_nothing(index_elements=UNIQUE_KEY)
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

        # Other backends: rely on the unique constraint
        try:
            db.add(TrackedArticle(**values))
            await db.commit()
            return True
        except IntegrityError:
            await db.rollback()
            return False

    async def mark_read(self, article_id: UUID, user_id: UUID) -> TrackedArticle:
        """
        Mark a tracked article read.

        Idempotent: read_at is only set on the first transition, an already
        read row is returned unchanged.
        """
        async with self.session_factory() as db:
            article = await db.get(TrackedArticle, article_id)
            if not article:
                raise ArticleNotFoundError(f"Article {article_id} not found")
            if article.user_id != user_id:
                logger.error(f"User {user_id} attempted to mark article {article_id} owned by {article.user_id}")
                raise OwnershipError("article", article_id, user_id)
            if article.is_read:
                return article

            # Conditional update so a concurrent mark cannot overwrite read_at
            await db.execute(
                update(TrackedArticle)
                .where(
                    TrackedArticle.id == article_id,
                    TrackedArticle.user_id == user_id,
                    TrackedArticle.is_read.is_(False),
                )
                .values(is_read=True, read_at=_utc_now())
            )
            await db.commit()
            await db.refresh(article)
            return article

    async def mark_many_read(self, article_ids: Iterable[UUID], user_id: UUID) -> int:
        """
        Mark several tracked articles read in one statement.

        Unknown ids are ignored; any id owned by another user refuses the
        whole batch.

        Returns:
            Number of rows that transitioned from unread to read
        """
        article_ids = list(dict.fromkeys(article_ids))
        if not article_ids:
            return 0

        async with self.session_factory() as db:
            result = await db.execute(
                select(TrackedArticle.id, TrackedArticle.user_id).where(TrackedArticle.id.in_(article_ids))
            )
            rows = result.all()

            foreign = [row.id for row in rows if row.user_id != user_id]
            if foreign:
                logger.error(f"User {user_id} attempted to mark {len(foreign)} article(s) of other users: {foreign}")
                raise OwnershipError("article", foreign[0], user_id)

            missing = len(article_ids) - len(rows)
            if missing:
                logger.info(f"Ignoring {missing} unknown article id(s) in batch mark-read")

            result = await db.execute(
                update(TrackedArticle)
                .where(
                    TrackedArticle.id.in_(article_ids),
                    TrackedArticle.user_id == user_id,
                    TrackedArticle.is_read.is_(False),
                )
                .values(is_read=True, read_at=_utc_now())
            )
            await db.commit()
            return result.rowcount

    async def unread_counts(self, user_id: UUID) -> Dict[UUID, int]:
        """Unread rows per feed for a user; feeds with nothing unread are absent"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(TrackedArticle.feed_id, func.count(TrackedArticle.id))
                .where(
                    TrackedArticle.user_id == user_id,
                    TrackedArticle.is_read.is_(False),
                )
                .group_by(TrackedArticle.feed_id)
            )
            return {feed_id: count for feed_id, count in result.all()}

    async def list_articles(
        self,
        feed_id: UUID,
        user_id: UUID,
        limit: int = 50,
        include_read: bool = True,
    ) -> List[TrackedArticle]:
        """Previously synced items of a feed, newest first"""
        async with self.session_factory() as db:
            await self._require_feed_owner(db, feed_id, user_id)

            query = select(TrackedArticle).where(
                TrackedArticle.feed_id == feed_id,
                TrackedArticle.user_id == user_id,
            )
            if not include_read:
                query = query.where(TrackedArticle.is_read.is_(False))

            query = query.order_by(
                TrackedArticle.pub_date.desc().nulls_last(),
                TrackedArticle.first_seen_at.desc(),
            ).limit(limit)

            result = await db.execute(query)
            return list(result.scalars().all())
