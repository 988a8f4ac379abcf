"""Test configuration and fixtures."""

from collections.abc import AsyncGenerator
from typing import Callable, Dict, List, Optional, Union
from uuid import UUID
from xml.sax.saxutils import escape

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feedsync import models  # noqa: F401
from feedsync.core.database import Base
from feedsync.models import Feed
from feedsync.services.feed_fetcher import FeedFetcher
from feedsync.services.feed_parser import FeedParser
from feedsync.services.read_state_store import ReadStateStore

USER_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = UUID("00000000-0000-0000-0000-000000000002")

FEED_URL = "https://example.com/feed.xml"

RSS_TYPE = "application/rss+xml; charset=utf-8"
ATOM_TYPE = "application/atom+xml"
HTML_TYPE = "text/html; charset=utf-8"


def build_rss(items: List[Dict[str, str]], title: str = "Example Feed", link: str = "https://example.com/") -> bytes:
    """RSS 2.0 document; each item is a dict of element name -> text"""
    entries = []
    for item in items:
        fields = "".join(f"<{tag}>{escape(value)}</{tag}>" for tag, value in item.items())
        entries.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel>'
        f"<title>{escape(title)}</title><link>{escape(link)}</link>"
        "<description>Example feed for tests</description>"
        f"{''.join(entries)}"
        "</channel></rss>"
    ).encode("utf-8")


def build_atom(entries: List[Dict[str, str]], title: str = "Example Atom") -> bytes:
    parts = []
    for entry in entries:
        fields = []
        for tag, value in entry.items():
            if tag == "link":
                fields.append(f'<link rel="alternate" href="{escape(value)}"/>')
            elif tag == "content":
                fields.append(f'<content type="html">{escape(value)}</content>')
            else:
                fields.append(f"<{tag}>{escape(value)}</{tag}>")
        parts.append(f"<entry>{''.join(fields)}</entry>")
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom">'
        f"<title>{escape(title)}</title>"
        '<link rel="alternate" href="https://atom.example.org/"/>'
        "<id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>"
        "<updated>2024-01-02T10:00:00Z</updated>"
        f"{''.join(parts)}"
        "</feed>"
    ).encode("utf-8")


THREE_ITEMS = [
    {"title": "First", "link": "https://example.com/1", "guid": "item-1", "pubDate": "Mon, 01 Jan 2024 10:00:00 GMT"},
    {"title": "Second", "link": "https://example.com/2", "guid": "item-2", "pubDate": "Tue, 02 Jan 2024 10:00:00 GMT"},
    {"title": "Third", "link": "https://example.com/3", "guid": "item-3", "pubDate": "Wed, 03 Jan 2024 10:00:00 GMT"},
]


Route = Union[tuple, Callable[[httpx.Request], httpx.Response]]


class FakeFeedServer:
    """
    Routes requests by absolute URL for httpx.MockTransport.

    A route is either (status_code, body, headers) or a callable taking the
    request. Unknown URLs answer 404.
    """

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests: List[str] = []

    def add(
        self,
        url: str,
        body: Union[bytes, str] = b"",
        status_code: int = 200,
        content_type: Optional[str] = RSS_TYPE,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        all_headers = dict(headers or {})
        if content_type:
            all_headers["content-type"] = content_type
        self.routes[url] = (status_code, body, all_headers)

    def add_handler(self, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[url] = handler

    def redirect(self, url: str, location: str, status_code: int = 301) -> None:
        self.routes[url] = (status_code, b"", {"location": location})

    def count(self, url: str) -> int:
        return self.requests.count(url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, content=b"not found")
        if callable(route):
            return route(request)
        status_code, body, headers = route
        return httpx.Response(status_code, content=body, headers=headers)


@pytest.fixture
def server() -> FakeFeedServer:
    return FakeFeedServer()


@pytest_asyncio.fixture
async def http_client(server: FakeFeedServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(server.handler)) as client:
        yield client


@pytest.fixture
def fetcher(http_client: httpx.AsyncClient) -> FeedFetcher:
    return FeedFetcher(client=http_client, timeout=5.0)


@pytest.fixture
def parser() -> FeedParser:
    return FeedParser(snippet_max_length=200)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's writes."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feedsync-test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory) -> ReadStateStore:
    return ReadStateStore(session_factory)


async def create_feed(session_factory, user_id: UUID = USER_ID, url: str = FEED_URL, title: str = "Example Feed") -> Feed:
    async with session_factory() as session:
        feed = Feed(user_id=user_id, url=url, title=title)
        session.add(feed)
        await session.commit()
        await session.refresh(feed)
        return feed


@pytest_asyncio.fixture
async def feed(session_factory) -> Feed:
    return await create_feed(session_factory)


@pytest_asyncio.fixture
async def other_feed(session_factory) -> Feed:
    return await create_feed(session_factory, user_id=OTHER_USER_ID, url="https://other.example.net/rss", title="Other")
