import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
from cachetools import TTLCache

from feedsync.services.feed_parser import FeedDocument

logger = logging.getLogger(__name__)


@dataclass
class CachedFeed:
    url: str  # URL the document was fetched from, after redirects
    document: FeedDocument
    cached_at: datetime


class FeedCache:
    """
    In-memory cache of recently validated feed documents.

    Lets add_feed() reuse the document parsed by validate_feed() a moment
    earlier instead of downloading it again. Entries expire after a short
    TTL; the least recently used entry is evicted when the cache is full.
    Sync never reads from this cache.
    """

    def __init__(self, ttl: int = 180, max_size: int = 999):
        """
        Initialize the feed cache.

        Args:
            ttl: Time-to-live in seconds (default 180s = 3 minutes)
            max_size: Maximum number of feeds to cache (default 999)
        """
        self._cache: TTLCache = TTLCache(maxsize=max_size, ttl=ttl)
        self._lock = asyncio.Lock()
        self._ttl = ttl
        self._max_size = max_size
        logger.info(f"FeedCache initialized: TTL={ttl}s, max_size={max_size}")

    @staticmethod
    def _normalize_url(url: str) -> str:
        """
        Cache key for a feed URL.

        Scheme and host are lower-cased, query parameters sorted and the
        fragment dropped. The path keeps its case.
        """
        if not url:
            return url

        parsed = urlparse(url.strip())
        query_params = parse_qs(parsed.query, keep_blank_values=True)
        normalized_query = urlencode(sorted(query_params.items()), doseq=True)

        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            normalized_query,
            ''  # Remove fragment
        ))

    async def get(self, url: str) -> Optional[CachedFeed]:
        """Cached entry for a URL, or None if absent or expired"""
        cache_key = self._normalize_url(url)

        async with self._lock:
            cached = self._cache.get(cache_key)

        if cached:
            age = (datetime.now(timezone.utc) - cached.cached_at).total_seconds()
            logger.info(f"Cache HIT for {cache_key[:60]}... (age: {age:.1f}s, items: {len(cached.document.items)})")
        else:
            logger.debug(f"Cache MISS for {cache_key[:60]}...")
        return cached

    async def set(self, url: str, document: FeedDocument, fetched_url: Optional[str] = None) -> CachedFeed:
        """
        Store a parsed feed document.

        Args:
            url: URL as requested by the user (cache key)
            document: Parsed document
            fetched_url: Final URL after redirects, defaults to url

        Returns:
            The stored entry
        """
        cache_key = self._normalize_url(url)
        entry = CachedFeed(
            url=fetched_url or url,
            document=document,
            cached_at=datetime.now(timezone.utc),
        )

        async with self._lock:
            self._cache[cache_key] = entry

        logger.info(f"Cache SET for {cache_key[:60]}... ({len(document.items)} items, TTL={self._ttl}s)")
        return entry

    async def clear(self) -> int:
        """
        Clear all cached feed data.

        Returns:
            Number of items cleared from cache
        """
        async with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.info(f"Cache cleared ({count} items removed)")
        return count

    async def stats(self) -> Dict[str, Any]:
        """Current size and limits of the cache"""
        async with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
            }


# Global singleton instance
_feed_cache_instance: Optional[FeedCache] = None


def get_feed_cache(ttl: int = 180, max_size: int = 999) -> FeedCache:
    """
    Get or create the global FeedCache singleton instance.

    Args:
        ttl: Time-to-live in seconds (only used on first initialization)
        max_size: Maximum cache size (only used on first initialization)

    Returns:
        Global FeedCache instance
    """
    global _feed_cache_instance

    if _feed_cache_instance is None:
        _feed_cache_instance = FeedCache(ttl=ttl, max_size=max_size)

    return _feed_cache_instance
