"""Tests for FeedCache."""

import asyncio

from feedsync.services.feed_cache import FeedCache
from feedsync.services.feed_parser import FeedDocument


def document(title: str = "Cached") -> FeedDocument:
    return FeedDocument(title=title, format="rss")


async def test_set_and_get():
    cache = FeedCache(ttl=60, max_size=10)

    stored = await cache.set("https://example.com/feed", document(), fetched_url="https://www.example.com/feed")
    cached = await cache.get("https://example.com/feed")

    assert cached is stored
    assert cached.url == "https://www.example.com/feed"
    assert cached.document.title == "Cached"


async def test_key_normalization():
    cache = FeedCache(ttl=60, max_size=10)
    await cache.set("HTTPS://Example.COM/Feed?b=2&a=1#frag", document())

    assert await cache.get("https://example.com/Feed?a=1&b=2") is not None
    # Path case is significant
    assert await cache.get("https://example.com/feed?a=1&b=2") is None


async def test_entries_expire():
    cache = FeedCache(ttl=0.05, max_size=10)
    await cache.set("https://example.com/feed", document())

    await asyncio.sleep(0.1)

    assert await cache.get("https://example.com/feed") is None


async def test_clear_and_stats():
    cache = FeedCache(ttl=60, max_size=2)
    for index in range(3):
        await cache.set(f"https://example.com/{index}", document())

    assert (await cache.stats())["size"] == 2
    assert await cache.clear() == 2
    assert (await cache.stats()) == {"size": 0, "max_size": 2, "ttl_seconds": 60}
