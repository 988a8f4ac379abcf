import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from feedsync.core.config import settings
from feedsync.core.exceptions import DiscoveryError, FetchError, FetchErrorKind, ParseError
from feedsync.services.feed_fetcher import FeedFetcher, FetchedDocument
from feedsync.services.feed_parser import FeedParser

logger = logging.getLogger(__name__)

# <link type="..."> values that advertise a feed, and the feed type they imply
FEED_LINK_TYPES = {
    "application/rss+xml": "rss",
    "application/atom+xml": "atom",
}

# Conventional feed locations probed when a page advertises nothing
FALLBACK_PATHS = (
    "/feed",
    "/rss",
    "/atom.xml",
    "/feed.xml",
    "/rss.xml",
    "/index.xml",
)


@dataclass
class DiscoveredFeed:
    url: str
    title: str
    type: str  # rss | atom
    site_url: Optional[str] = None


class FeedDiscovery:
    """Locate feed endpoints for a site URL or bare domain"""

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: Optional[FeedParser] = None,
        max_bytes: Optional[int] = None,
        fallback_paths: Sequence[str] = FALLBACK_PATHS,
    ):
        self.fetcher = fetcher
        self.parser = parser or FeedParser()
        self.max_bytes = max_bytes or settings.DISCOVERY_MAX_BYTES
        self.fallback_paths = tuple(fallback_paths)

    @staticmethod
    def normalize_url(query: str) -> str:
        """
        Turn user input into an absolute URL, defaulting to https.

        Raises:
            DiscoveryError: if the input is blank
        """
        query = (query or "").strip()
        if not query:
            raise DiscoveryError(FetchError(FetchErrorKind.INVALID_URL, query, detail="empty query"))
        parsed = urlparse(query)
        # "example.com:8080" parses with a scheme but no host
        if not (parsed.scheme and parsed.netloc):
            query = f"https://{query}"
        return query

    async def discover(self, query: str) -> List[DiscoveredFeed]:
        """
        Find the feeds advertised by (or conventionally hosted on) a site.

        In-page <link rel="alternate"> feeds come first in document order;
        fallback probes are only used when the page advertises none and are
        reported in fixed probe order.

        Returns:
            Discovered feeds, possibly empty

        Raises:
            DiscoveryError: if the root page itself cannot be fetched
        """
        url = self.normalize_url(query)

        try:
            page = await self.fetcher.fetch(url, max_bytes=self.max_bytes)
        except FetchError as e:
            logger.warning(f"Discovery could not fetch {url}: {e}")
            raise DiscoveryError(e) from e

        direct = self._as_feed(page)
        if direct:
            logger.info(f"Discovery: {url} is itself a feed")
            return [direct]

        found = self._scan_links(page)
        if found:
            logger.info(f"Discovery: {len(found)} advertised feed(s) on {page.url}")
            return _dedupe(found)

        probed = await self._probe_fallbacks(page.url)
        logger.info(f"Discovery: {len(probed)} feed(s) found by probing {page.url}")
        return _dedupe(probed)

    def _as_feed(self, page: FetchedDocument) -> Optional[DiscoveredFeed]:
        """The root URL may already point at a feed rather than an HTML page"""
        content_type = (page.content_type or "").lower()
        if page.truncated or not any(marker in content_type for marker in ("xml", "rss", "atom")):
            return None

        try:
            document = self.parser.parse(page.content, page.content_type)
        except ParseError as e:
            logger.debug(f"Root document {page.url} is XML but not a feed: {e}")
            return None

        return DiscoveredFeed(
            url=page.url,
            title=document.title or page.url,
            type=document.format,
            site_url=document.site_url,
        )

    def _scan_links(self, page: FetchedDocument) -> List[DiscoveredFeed]:
        soup = BeautifulSoup(page.content, "html.parser")

        page_title = None
        if soup.title and soup.title.string:
            page_title = soup.title.string.strip() or None

        site_url = _origin(page.url)
        feeds = []
        for link in soup.find_all("link"):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "alternate" not in [value.lower() for value in rel]:
                continue

            link_type = (link.get("type") or "").split(";")[0].strip().lower()
            feed_type = FEED_LINK_TYPES.get(link_type)
            href = (link.get("href") or "").strip()
            if not feed_type or not href:
                continue

            feed_url = urljoin(page.url, href)
            title = (link.get("title") or "").strip() or page_title or feed_url
            feeds.append(DiscoveredFeed(url=feed_url, title=title, type=feed_type, site_url=site_url))

        return feeds

    async def _probe_fallbacks(self, page_url: str) -> List[DiscoveredFeed]:
        origin = _origin(page_url)
        candidates = [urljoin(origin, path) for path in self.fallback_paths]
        results = await asyncio.gather(*(self._probe(candidate, origin) for candidate in candidates))
        return [result for result in results if result is not None]

    async def _probe(self, candidate: str, site_url: str) -> Optional[DiscoveredFeed]:
        try:
            fetched = await self.fetcher.fetch(candidate)
            document = self.parser.parse(fetched.content, fetched.content_type)
        except (FetchError, ParseError) as e:
            logger.debug(f"Probe miss {candidate}: {e}")
            return None

        return DiscoveredFeed(
            url=candidate,
            title=document.title or candidate,
            type=document.format,
            site_url=document.site_url or site_url,
        )


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def _dedupe(feeds: List[DiscoveredFeed]) -> List[DiscoveredFeed]:
    seen = set()
    unique = []
    for feed in feeds:
        if feed.url in seen:
            continue
        seen.add(feed.url)
        unique.append(feed)
    return unique
