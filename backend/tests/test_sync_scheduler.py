"""Tests for SyncScheduler."""

import pytest
from sqlalchemy import func, select

from conftest import FEED_URL, OTHER_USER_ID, THREE_ITEMS, build_rss, create_feed
from feedsync.models import TrackedArticle
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.sync_scheduler import SyncScheduler


@pytest.fixture
def scheduler(session_factory, http_client) -> SyncScheduler:
    return SyncScheduler(
        session_factory,
        interval_minutes=15,
        fetcher_factory=lambda: FeedFetcher(client=http_client),
    )


async def test_refresh_cycle_covers_every_user(server, scheduler, session_factory, feed):
    other = await create_feed(session_factory, user_id=OTHER_USER_ID, url="https://other.example.net/rss")
    broken = await create_feed(session_factory, url="https://broken.example.com/rss")
    server.add(FEED_URL, build_rss(THREE_ITEMS))
    server.add(other.url, build_rss(THREE_ITEMS[:1]))
    server.add(broken.url, b"missing", status_code=404, content_type="text/plain")

    refreshed = await scheduler.refresh_all_users()

    assert refreshed == 2
    async with session_factory() as session:
        total = (await session.execute(select(func.count(TrackedArticle.id)))).scalar()
    assert total == 4
    assert server.count(broken.url) == 1


async def test_refresh_cycle_without_feeds(server, scheduler):
    assert await scheduler.refresh_all_users() == 0
    assert server.requests == []


async def test_start_registers_interval_job(scheduler):
    scheduler.start()
    try:
        job = scheduler.scheduler.get_job("refresh_all_feeds")
        assert job is not None
        assert job.trigger.interval.total_seconds() == 15 * 60
        assert scheduler.is_running
    finally:
        scheduler.shutdown()

    assert not scheduler.is_running
