"""FastAPI dependencies shared by the routers"""

import logging
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from feedsync.core.config import settings
from feedsync.core.database import get_session_factory
from feedsync.services.feed_cache import FeedCache, get_feed_cache
from feedsync.services.feed_discovery import FeedDiscovery
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.feed_parser import FeedParser
from feedsync.services.feed_sync import FeedSyncService
from feedsync.services.read_state_store import ReadStateStore

logger = logging.getLogger(__name__)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    """
    Identify the caller from the X-User-Id header.

    Authentication happens upstream; this service only trusts the id it is given.
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")


async def get_fetcher() -> AsyncGenerator[FeedFetcher, None]:
    async with FeedFetcher() as fetcher:
        yield fetcher


def get_parser() -> FeedParser:
    return FeedParser()


def get_cache() -> FeedCache:
    return get_feed_cache(ttl=settings.FEED_CACHE_TTL_SECONDS, max_size=settings.FEED_CACHE_MAX_SIZE)


def get_read_state_store(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ReadStateStore:
    return ReadStateStore(session_factory)


def get_discovery(
    fetcher: FeedFetcher = Depends(get_fetcher),
    parser: FeedParser = Depends(get_parser),
) -> FeedDiscovery:
    return FeedDiscovery(fetcher, parser)


def get_sync_service(
    fetcher: FeedFetcher = Depends(get_fetcher),
    parser: FeedParser = Depends(get_parser),
    store: ReadStateStore = Depends(get_read_state_store),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> FeedSyncService:
    return FeedSyncService(fetcher, parser, store, session_factory)
