import logging
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feedsync.api.deps import (
    get_cache,
    get_current_user_id,
    get_discovery,
    get_fetcher,
    get_parser,
    get_read_state_store,
    get_sync_service,
)
from feedsync.core.database import get_db
from feedsync.schemas import (
    DiscoveredFeedResponse,
    FeedCacheClearResponse,
    FeedCacheStatsResponse,
    FeedCreate,
    FeedImportRequest,
    FeedImportResponse,
    FeedResponse,
    FeedUpdate,
    FeedValidateRequest,
    FeedValidateResponse,
    RefreshResponse,
    SyncResponse,
    TrackedArticleResponse,
)
from feedsync.services.feed_cache import FeedCache
from feedsync.services.feed_discovery import FeedDiscovery
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.feed_parser import FeedParser
from feedsync.services.feed_service import FeedService
from feedsync.services.feed_sync import FeedSyncService
from feedsync.services.read_state_store import ReadStateStore

router = APIRouter(prefix="/api", tags=["feeds"])
logger = logging.getLogger(__name__)


def _feed_response(feed, unread_counts: Dict[UUID, int]) -> FeedResponse:
    response = FeedResponse.model_validate(feed)
    response.unread_count = unread_counts.get(feed.id, 0)
    return response


@router.get(
    "/feeds/discover",
    response_model=List[DiscoveredFeedResponse],
    summary="Discover Feeds",
    description="""
Find feed endpoints for a site URL or bare domain.

Advertised `<link rel="alternate">` feeds are returned first. When the page
advertises none, conventional locations such as `/feed` and `/rss.xml` are
probed. An empty list means nothing was found; a 502 means the site itself
could not be fetched.
    """,
    tags=["Discovery"]
)
async def discover_feeds(
    query: str = Query(..., description="Site URL or domain, e.g. example.com"),
    user_id: UUID = Depends(get_current_user_id),
    discovery: FeedDiscovery = Depends(get_discovery),
):
    feeds = await discovery.discover(query)
    logger.info(f"Discovery for '{query}' found {len(feeds)} feed(s)")
    return feeds


@router.post(
    "/feeds/validate",
    response_model=FeedValidateResponse,
    summary="Validate Feed URL",
    description="Fetch and parse a feed URL. The parsed document is cached briefly so a following subscribe call does not download it again.",
    tags=["Validation"]
)
async def validate_feed_url(
    request: FeedValidateRequest,
    user_id: UUID = Depends(get_current_user_id),
    fetcher: FeedFetcher = Depends(get_fetcher),
    parser: FeedParser = Depends(get_parser),
    cache: FeedCache = Depends(get_cache),
):
    validated = await FeedService.validate_feed(request.url, fetcher, parser, cache)
    document = validated.document
    return FeedValidateResponse(
        valid=True,
        url=validated.url,
        title=document.title,
        site_url=document.site_url,
        description=document.description,
        format=document.format,
        item_count=len(document.items),
    )


@router.post(
    "/feeds",
    response_model=FeedResponse,
    status_code=201,
    summary="Subscribe to Feed",
    description="""
Subscribe to a feed. The URL is validated first (reusing a recent
`POST /api/feeds/validate` result when available).

Returns 409 when the user is already subscribed to the URL.
    """,
    tags=["Feeds"]
)
async def create_feed(
    feed: FeedCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    fetcher: FeedFetcher = Depends(get_fetcher),
    parser: FeedParser = Depends(get_parser),
    cache: FeedCache = Depends(get_cache),
):
    db_feed = await FeedService.add_feed(
        db,
        user_id,
        feed.url,
        fetcher,
        parser,
        cache,
        folder_id=feed.folder_id,
        title=feed.title,
    )
    return _feed_response(db_feed, {})


@router.get(
    "/feeds",
    response_model=List[FeedResponse],
    summary="List Feeds",
    description="All feeds of the user, newest first, with unread counts.",
    tags=["Feeds"]
)
async def list_feeds(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ReadStateStore = Depends(get_read_state_store),
):
    feeds = await FeedService.list_feeds(db, user_id)
    unread_counts = await store.unread_counts(user_id)
    return [_feed_response(feed, unread_counts) for feed in feeds]


@router.post(
    "/feeds/refresh",
    response_model=RefreshResponse,
    summary="Refresh All Feeds",
    description="Sync every feed of the user. Feeds that fail are reported in `errors`; the others are still refreshed.",
    tags=["Sync"]
)
async def refresh_all_feeds(
    user_id: UUID = Depends(get_current_user_id),
    sync_service: FeedSyncService = Depends(get_sync_service),
):
    summary = await sync_service.refresh_all(user_id)
    return RefreshResponse(
        success=summary.success,
        feeds_refreshed=summary.feeds_refreshed,
        total_added=summary.total_added,
        total_existing=summary.total_existing,
        errors=summary.errors,
    )


@router.post(
    "/feeds/import",
    response_model=FeedImportResponse,
    summary="Import Feeds",
    description="Create feeds from `(url, folder_name)` pairs, e.g. produced by an OPML importer. Existing subscriptions are skipped.",
    tags=["Feeds"]
)
async def import_feeds(
    request: FeedImportRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await FeedService.import_feeds(db, user_id, request.feeds)
    return FeedImportResponse(**result)


@router.get(
    "/feeds/validate/cache",
    response_model=FeedCacheStatsResponse,
    summary="Validation Cache Stats",
    description="Size and limits of the cache of recently validated feed documents.",
    tags=["Validation"]
)
async def get_validation_cache_stats(
    user_id: UUID = Depends(get_current_user_id),
    cache: FeedCache = Depends(get_cache),
):
    stats = await cache.stats()
    return FeedCacheStatsResponse(**stats)


@router.delete(
    "/feeds/validate/cache",
    response_model=FeedCacheClearResponse,
    summary="Clear Validation Cache",
    description="Drop every cached validation result so the next subscribe downloads the feed again.",
    tags=["Validation"]
)
async def clear_validation_cache(
    user_id: UUID = Depends(get_current_user_id),
    cache: FeedCache = Depends(get_cache),
):
    cleared = await cache.clear()
    logger.info(f"User {user_id} cleared the validation cache ({cleared} entries)")
    return FeedCacheClearResponse(cleared=cleared)


@router.patch(
    "/feeds/{feed_id}",
    response_model=FeedResponse,
    summary="Update Feed",
    description="Rename a feed or move it into or out of a folder. Only the provided fields are changed.",
    tags=["Feeds"]
)
async def update_feed(
    feed_id: UUID,
    update: FeedUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: ReadStateStore = Depends(get_read_state_store),
):
    feed = await FeedService.update_feed(
        db,
        feed_id,
        user_id,
        title=update.title,
        folder_id=update.folder_id,
        remove_from_folder=update.remove_from_folder,
    )
    unread_counts = await store.unread_counts(user_id)
    return _feed_response(feed, unread_counts)


@router.delete(
    "/feeds/{feed_id}",
    summary="Delete Feed",
    description="""
Delete a feed together with all its tracked articles and their read state.

**Warning:** This is a destructive operation that cannot be undone.
    """,
    tags=["Feeds"]
)
async def delete_feed(
    feed_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await FeedService.delete_feed(db, feed_id, user_id)


@router.post(
    "/feeds/{feed_id}/sync",
    response_model=SyncResponse,
    summary="Sync Feed",
    description="""
Fetch the feed now and reconcile it with the user's read state.

Items are returned in document order, each annotated with `is_read` and
whether it was seen for the first time. When the fetch or parse fails a 502
is returned with the failing `phase`; previously synced items stay available
from `GET /api/feeds/{feed_id}/articles`.
    """,
    tags=["Sync"]
)
async def sync_feed(
    feed_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    sync_service: FeedSyncService = Depends(get_sync_service),
):
    feed = await FeedService.get_feed(db, feed_id, user_id)
    result = await sync_service.sync(feed, user_id)
    return SyncResponse.from_result(result)


@router.get(
    "/feeds/{feed_id}/articles",
    response_model=List[TrackedArticleResponse],
    summary="List Synced Articles",
    description="Previously synced items of a feed, newest first. Available even when the feed is currently unreachable.",
    tags=["Articles"]
)
async def list_feed_articles(
    feed_id: UUID,
    limit: int = Query(50, ge=1, le=200, description="Number of articles to return"),
    include_read: bool = Query(True, description="Include articles already read"),
    user_id: UUID = Depends(get_current_user_id),
    store: ReadStateStore = Depends(get_read_state_store),
):
    return await store.list_articles(feed_id, user_id, limit=limit, include_read=include_read)
