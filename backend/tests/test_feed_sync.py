"""Tests for FeedSyncService."""

import asyncio

import httpx
import pytest
from sqlalchemy import func, select

from conftest import FEED_URL, OTHER_USER_ID, THREE_ITEMS, USER_ID, build_rss, create_feed
from feedsync.core.exceptions import OwnershipError, SyncError
from feedsync.models import Feed, TrackedArticle
from feedsync.services.feed_sync import FeedSyncService


@pytest.fixture
def sync_service(fetcher, parser, store, session_factory) -> FeedSyncService:
    return FeedSyncService(fetcher, parser, store, session_factory, retry_delay=0, concurrency=2)


async def tracked_rows(session_factory, feed_id=None):
    async with session_factory() as session:
        query = select(TrackedArticle)
        if feed_id is not None:
            query = query.where(TrackedArticle.feed_id == feed_id)
        return (await session.execute(query)).scalars().all()


async def test_fresh_feed_tracks_every_item_unread(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS))

    result = await sync_service.sync(feed, USER_ID)

    assert [annotated.identity for annotated in result.items] == ["item-1", "item-2", "item-3"]
    assert all(not annotated.is_read for annotated in result.items)
    assert all(annotated.is_new for annotated in result.items)
    assert result.new_count == 3
    assert result.existing_count == 0
    assert result.feed_title == "Example Feed"
    assert len(await tracked_rows(session_factory)) == 3


async def test_resync_of_unchanged_feed_is_idempotent(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS))

    first = await sync_service.sync(feed, USER_ID)
    second = await sync_service.sync(feed, USER_ID)

    assert second.new_count == 0
    assert second.existing_count == 3
    assert not any(annotated.is_new for annotated in second.items)
    assert [a.tracked_article_id for a in second.items] == [a.tracked_article_id for a in first.items]
    assert len(await tracked_rows(session_factory)) == 3


async def test_partial_overlap_adds_only_new_items(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS[:2]))
    await sync_service.sync(feed, USER_ID)

    server.add(FEED_URL, build_rss(THREE_ITEMS[1:]))
    result = await sync_service.sync(feed, USER_ID)

    assert [(a.identity, a.is_new) for a in result.items] == [("item-2", False), ("item-3", True)]
    assert result.new_count == 1
    assert result.existing_count == 1
    # Items that dropped out of the feed are never deleted
    assert {row.guid for row in await tracked_rows(session_factory)} == {"item-1", "item-2", "item-3"}


async def test_read_state_survives_resync(server, sync_service, store, feed):
    server.add(FEED_URL, build_rss(THREE_ITEMS))
    first = await sync_service.sync(feed, USER_ID)
    marked = await store.mark_read(first.items[1].tracked_article_id, USER_ID)

    second = await sync_service.sync(feed, USER_ID)

    assert [a.is_read for a in second.items] == [False, True, False]
    assert second.items[1].read_at == marked.read_at


async def test_changed_title_keeps_identity_and_read_state(server, sync_service, store, feed):
    server.add(FEED_URL, build_rss(THREE_ITEMS))
    first = await sync_service.sync(feed, USER_ID)
    await store.mark_read(first.items[0].tracked_article_id, USER_ID)

    edited = [dict(THREE_ITEMS[0], title="First (updated)")] + THREE_ITEMS[1:]
    server.add(FEED_URL, build_rss(edited))
    second = await sync_service.sync(feed, USER_ID)

    assert second.items[0].item.title == "First (updated)"
    assert second.items[0].is_read is True
    assert second.new_count == 0


async def test_identity_falls_back_to_link_then_title(server, sync_service, feed):
    server.add(
        FEED_URL,
        build_rss([
            {"title": "Linked", "link": "https://example.com/linked"},
            {"title": "Title only"},
            {"description": "nothing to identify this item"},
        ]),
    )

    result = await sync_service.sync(feed, USER_ID)

    assert [a.identity for a in result.items] == ["https://example.com/linked", "Title only"]


async def test_malformed_feed_leaves_store_untouched(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS))
    await sync_service.sync(feed, USER_ID)
    before = {(row.guid, row.is_read) for row in await tracked_rows(session_factory)}

    server.add(FEED_URL, b"<rss><channel><item>broken")
    with pytest.raises(SyncError) as exc_info:
        await sync_service.sync(feed, USER_ID)

    assert exc_info.value.phase == SyncError.PHASE_PARSE
    assert exc_info.value.kind == "malformed"
    assert {(row.guid, row.is_read) for row in await tracked_rows(session_factory)} == before


async def test_fetch_failure_raises_sync_error(server, sync_service, feed, session_factory):
    server.add(FEED_URL, b"gone", status_code=404, content_type="text/plain")

    with pytest.raises(SyncError) as exc_info:
        await sync_service.sync(feed, USER_ID)

    error = exc_info.value
    assert error.phase == SyncError.PHASE_FETCH
    assert error.kind == "http_status"
    assert "404" in error.user_message
    # Permanent errors are not retried
    assert server.count(FEED_URL) == 1
    assert await tracked_rows(session_factory) == []


async def test_transient_failure_is_retried_once(server, sync_service, feed):
    responses = iter([
        httpx.Response(503, content=b"busy"),
        httpx.Response(200, content=build_rss(THREE_ITEMS), headers={"content-type": "application/rss+xml"}),
    ])
    server.add_handler(FEED_URL, lambda request: next(responses))

    result = await sync_service.sync(feed, USER_ID)

    assert result.new_count == 3
    assert server.count(FEED_URL) == 2


async def test_transient_failure_gives_up_after_one_retry(server, sync_service, feed):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    server.add_handler(FEED_URL, refuse)

    with pytest.raises(SyncError) as exc_info:
        await sync_service.sync(feed, USER_ID)

    assert exc_info.value.kind == "unreachable"
    assert server.count(FEED_URL) == 2


async def test_concurrent_syncs_do_not_duplicate_rows(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS))

    results = await asyncio.gather(*(sync_service.sync(feed, USER_ID) for _ in range(3)))

    assert len(await tracked_rows(session_factory)) == 3
    assert sum(result.new_count for result in results) == 3
    ids = {tuple(a.tracked_article_id for a in result.items) for result in results}
    assert len(ids) == 1


async def test_sync_of_foreign_feed_is_refused(server, sync_service, other_feed):
    server.add(other_feed.url, build_rss(THREE_ITEMS))

    with pytest.raises(OwnershipError):
        await sync_service.sync(other_feed, USER_ID)

    assert server.requests == []


async def test_sync_records_last_synced_at(server, sync_service, feed, session_factory):
    server.add(FEED_URL, build_rss(THREE_ITEMS))

    await sync_service.sync(feed, USER_ID)

    async with session_factory() as session:
        refreshed = await session.get(Feed, feed.id)
    assert refreshed.last_synced_at is not None


async def test_refresh_all_isolates_failing_feeds(server, sync_service, feed, other_feed, session_factory):
    broken = await create_feed(session_factory, url="https://broken.example.com/rss", title="Broken")
    server.add(FEED_URL, build_rss(THREE_ITEMS))
    server.add(broken.url, b"not xml at all <", content_type="text/html")
    server.add(other_feed.url, build_rss(THREE_ITEMS))

    summary = await sync_service.refresh_all(USER_ID)

    assert summary.feeds_refreshed == 1
    assert summary.total_added == 3
    assert summary.success is False
    assert len(summary.errors) == 1
    assert summary.errors[0].startswith("Broken:")
    # Other users' feeds are not touched
    assert server.count(other_feed.url) == 0


async def test_refresh_all_without_feeds(sync_service):
    summary = await sync_service.refresh_all(OTHER_USER_ID)

    assert summary.feeds_refreshed == 0
    assert summary.success is True
