import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedsync.core.exceptions import (
    DuplicateFeedError,
    FeedNotFoundError,
    FolderNotFoundError,
    FetchError,
    UnauthorizedError,
    ValidationError,
)
from feedsync.models import Feed, Folder, TrackedArticle
from feedsync.services.feed_cache import CachedFeed, FeedCache
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.feed_parser import FeedParser

logger = logging.getLogger(__name__)


class FeedService:
    """Service layer for feed subscriptions and folders"""

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    @staticmethod
    async def validate_feed(
        url: str,
        fetcher: FeedFetcher,
        parser: FeedParser,
        cache: FeedCache,
    ) -> CachedFeed:
        """
        Fetch and parse a feed URL, caching the result briefly.

        Raises:
            FetchError: URL invalid or unreachable
            ParseError: response is not a readable feed
        """
        url = FeedFetcher.validate_url(url)

        cached = await cache.get(url)
        if cached:
            return cached

        fetched = await fetcher.fetch(url)
        document = parser.parse(fetched.content, fetched.content_type)
        entry = await cache.set(url, document, fetched_url=fetched.url)

        logger.info(f"Validated feed {url}: '{document.title}' ({len(document.items)} items)")
        return entry

    @staticmethod
    async def get_feed(db: AsyncSession, feed_id: UUID, user_id: UUID) -> Feed:
        """
        Load a feed owned by user_id.

        Raises:
            FeedNotFoundError: feed does not exist
            UnauthorizedError: feed belongs to another user
        """
        feed = await db.get(Feed, feed_id)
        if not feed:
            raise FeedNotFoundError()
        if feed.user_id != user_id:
            logger.warning(f"User {user_id} attempted to access feed {feed_id} owned by {feed.user_id}")
            raise UnauthorizedError("Not authorized to access this feed")
        return feed

    @staticmethod
    async def _get_folder(db: AsyncSession, folder_id: UUID, user_id: UUID) -> Folder:
        folder = await db.get(Folder, folder_id)
        if not folder:
            raise FolderNotFoundError()
        if folder.user_id != user_id:
            logger.warning(f"User {user_id} attempted to use folder {folder_id} owned by {folder.user_id}")
            raise UnauthorizedError("Not authorized to use this folder")
        return folder

    @staticmethod
    async def add_feed(
        db: AsyncSession,
        user_id: UUID,
        url: str,
        fetcher: FeedFetcher,
        parser: FeedParser,
        cache: FeedCache,
        folder_id: Optional[UUID] = None,
        title: Optional[str] = None,
    ) -> Feed:
        """
        Subscribe a user to a feed after validating it.

        Raises:
            DuplicateFeedError: user already subscribed to this URL
            FetchError / ParseError: feed could not be validated
        """
        url = FeedFetcher.validate_url(url)

        if folder_id is not None:
            await FeedService._get_folder(db, folder_id, user_id)

        result = await db.execute(
            select(Feed.id).where(Feed.user_id == user_id, Feed.url == url)
        )
        if result.scalar_one_or_none() is not None:
            raise DuplicateFeedError()

        validated = await FeedService.validate_feed(url, fetcher, parser, cache)
        document = validated.document

        feed = Feed(
            user_id=user_id,
            folder_id=folder_id,
            url=url,
            title=(title or "").strip() or document.title or url,
            site_url=document.site_url,
        )
        db.add(feed)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent subscription to the same URL
            await db.rollback()
            raise DuplicateFeedError()

        await db.refresh(feed)
        logger.info(f"User {user_id} subscribed to '{feed.title}' ({url})")
        return feed

    @staticmethod
    async def list_feeds(db: AsyncSession, user_id: UUID) -> List[Feed]:
        result = await db.execute(
            select(Feed)
            .where(Feed.user_id == user_id)
            .order_by(Feed.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_feed(
        db: AsyncSession,
        feed_id: UUID,
        user_id: UUID,
        title: Optional[str] = None,
        folder_id: Optional[UUID] = None,
        remove_from_folder: bool = False,
    ) -> Feed:
        """Rename a feed and/or move it into (or out of) a folder"""
        feed = await FeedService.get_feed(db, feed_id, user_id)

        if title is not None:
            title_stripped = title.strip()
            if not title_stripped:
                raise ValidationError("Title cannot be empty")
            feed.title = title_stripped

        if remove_from_folder:
            feed.folder_id = None
        elif folder_id is not None:
            await FeedService._get_folder(db, folder_id, user_id)
            feed.folder_id = folder_id

        await db.commit()
        await db.refresh(feed)
        logger.info(f"Updated feed {feed_id}: title='{feed.title}', folder={feed.folder_id}")
        return feed

    @staticmethod
    async def delete_feed(db: AsyncSession, feed_id: UUID, user_id: UUID) -> Dict[str, Any]:
        """
        Delete a feed together with all its tracked articles.

        Returns:
            Dictionary with deletion statistics
        """
        feed = await FeedService.get_feed(db, feed_id, user_id)

        try:
            count_result = await db.execute(
                select(func.count(TrackedArticle.id)).where(TrackedArticle.feed_id == feed_id)
            )
            article_count = count_result.scalar() or 0

            feed_title = feed.title
            feed_url = feed.url

            await db.execute(delete(TrackedArticle).where(TrackedArticle.feed_id == feed_id))
            await db.delete(feed)
            await db.commit()

        except Exception as e:
            logger.error(f"Error deleting feed {feed_id}: {e}")
            await db.rollback()
            raise HTTPException(status_code=500, detail=f"Failed to delete feed: {str(e)}")

        logger.info(f"Deleted feed '{feed_title}' (ID: {feed_id}) with {article_count} tracked articles")
        return {
            "feed_id": str(feed_id),
            "feed_title": feed_title,
            "feed_url": feed_url,
            "articles_deleted": article_count,
            "message": "Feed deleted successfully",
        }

    @staticmethod
    async def import_feeds(db: AsyncSession, user_id: UUID, entries: Iterable[Any]) -> Dict[str, int]:
        """
        Create feeds from (url, folder_name) pairs produced by an OPML importer.

        Each entry exposes url, folder_name and an optional title. Folders
        are reused by name or created. Invalid and already subscribed URLs
        are skipped. No network requests are made.
        """
        existing = await db.execute(select(Feed.url).where(Feed.user_id == user_id))
        subscribed = set(existing.scalars().all())

        folder_rows = await db.execute(select(Folder).where(Folder.user_id == user_id))
        folders = {folder.name: folder for folder in folder_rows.scalars().all()}

        imported = skipped = folders_created = 0
        for entry in entries:
            try:
                url = FeedFetcher.validate_url(entry.url)
            except FetchError as e:
                logger.info(f"Skipping imported entry: {e}")
                skipped += 1
                continue

            if url in subscribed:
                skipped += 1
                continue

            folder_id = None
            folder_name = (entry.folder_name or "").strip()
            if folder_name:
                folder = folders.get(folder_name)
                if folder is None:
                    folder = Folder(user_id=user_id, name=folder_name)
                    db.add(folder)
                    await db.flush()
                    folders[folder_name] = folder
                    folders_created += 1
                folder_id = folder.id

            title = (getattr(entry, "title", None) or "").strip() or url
            db.add(Feed(user_id=user_id, folder_id=folder_id, url=url, title=title))
            subscribed.add(url)
            imported += 1

        await db.commit()
        logger.info(
            f"Imported {imported} feeds for user {user_id} "
            f"({skipped} skipped, {folders_created} folders created)"
        )
        return {"imported": imported, "skipped": skipped, "folders_created": folders_created}

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    @staticmethod
    async def create_folder(db: AsyncSession, user_id: UUID, name: str) -> Folder:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name cannot be empty")

        folder = Folder(user_id=user_id, name=name)
        db.add(folder)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ValidationError(f"A folder named '{name}' already exists")

        await db.refresh(folder)
        logger.info(f"Created folder '{name}' for user {user_id}")
        return folder

    @staticmethod
    async def list_folders(db: AsyncSession, user_id: UUID) -> List[Folder]:
        result = await db.execute(
            select(Folder).where(Folder.user_id == user_id).order_by(Folder.name.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def rename_folder(db: AsyncSession, folder_id: UUID, user_id: UUID, name: str) -> Folder:
        folder = await FeedService._get_folder(db, folder_id, user_id)

        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name cannot be empty")

        folder.name = name
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ValidationError(f"A folder named '{name}' already exists")

        await db.refresh(folder)
        return folder

    @staticmethod
    async def delete_folder(db: AsyncSession, folder_id: UUID, user_id: UUID) -> Dict[str, Any]:
        """
        Delete a folder. Its feeds are kept and simply lose their folder.
        """
        folder = await FeedService._get_folder(db, folder_id, user_id)

        result = await db.execute(
            update(Feed)
            .where(Feed.folder_id == folder_id, Feed.user_id == user_id)
            .values(folder_id=None)
        )
        feeds_unfiled = result.rowcount

        await db.delete(folder)
        await db.commit()

        logger.info(f"Deleted folder {folder_id}; {feeds_unfiled} feed(s) moved out of it")
        return {
            "folder_id": str(folder_id),
            "feeds_unfiled": feeds_unfiled,
            "message": "Folder deleted successfully",
        }
