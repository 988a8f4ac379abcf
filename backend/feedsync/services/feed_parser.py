import logging
import re
import xml.sax
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from feedsync.core.config import settings
from feedsync.core.exceptions import ParseError, ParseErrorKind
from feedsync.utils.html_parser import first_image_url, html_to_text, truncate_text

logger = logging.getLogger(__name__)

FORMAT_RSS = "rss"
FORMAT_ATOM = "atom"

_HTML_ROOT_RE = re.compile(
    rb"\s*(?:<\?xml[^>]*>\s*)?(?:<!--.*?-->\s*)*<(?:!doctype\s+html|html[\s>])",
    re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class FeedItem:
    """One normalized feed entry; title is never None"""

    title: str
    link: Optional[str] = None
    guid: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    content_snippet: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class FeedDocument:
    """A parsed feed: channel metadata plus items in document order"""

    title: str
    format: str
    site_url: Optional[str] = None
    description: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)


class FeedParser:
    """Turn raw RSS / Atom bytes into a FeedDocument"""

    def __init__(self, snippet_max_length: Optional[int] = None):
        self.snippet_max_length = snippet_max_length or settings.SNIPPET_MAX_LENGTH

    def parse(self, raw: bytes, content_type_hint: Optional[str] = None) -> FeedDocument:
        """
        Parse feed bytes.

        The format is detected from the document root; content_type_hint is
        only used in diagnostics.

        Raises:
            ParseError: MALFORMED for empty or ill-formed XML,
                UNSUPPORTED_FORMAT for HTML pages and well-formed documents that are not feeds
        """
        if not raw or not raw.strip():
            raise ParseError(ParseErrorKind.MALFORMED, "empty document")

        parsed = feedparser.parse(raw)

        if parsed.bozo and isinstance(parsed.get("bozo_exception"), xml.sax.SAXException):
            error = parsed.bozo_exception
            if _HTML_ROOT_RE.match(raw.lstrip(b"\xef\xbb\xbf")[:4096]):
                logger.info(f"Document is an HTML page (content-type={content_type_hint})")
                raise ParseError(ParseErrorKind.UNSUPPORTED_FORMAT, "document is an HTML page, not a feed")
            logger.info(f"Malformed feed document (content-type={content_type_hint}): {error}")
            raise ParseError(ParseErrorKind.MALFORMED, str(error))

        feed_format = self._detect_format(parsed.get("version") or "")
        if feed_format is None:
            logger.info(
                f"Document is not RSS or Atom (version={parsed.get('version')!r}, "
                f"content-type={content_type_hint})"
            )
            raise ParseError(ParseErrorKind.UNSUPPORTED_FORMAT, "document is not an RSS or Atom feed")

        channel = parsed.feed
        items = [self._parse_entry(entry) for entry in parsed.entries]

        return FeedDocument(
            title=(channel.get("title") or "").strip(),
            format=feed_format,
            site_url=channel.get("link") or None,
            description=channel.get("subtitle") or channel.get("description") or None,
            items=items,
        )

    @staticmethod
    def _detect_format(version: str) -> Optional[str]:
        if version.startswith("atom"):
            return FORMAT_ATOM
        if version.startswith("rss"):
            return FORMAT_RSS
        return None

    def _parse_entry(self, entry: Any) -> FeedItem:
        """Normalize a single feedparser entry"""
        summary = entry.get("summary") or ""

        content = None
        if entry.get("content"):
            content = entry.content[0].get("value") or None
        if content is None and summary:
            content = summary

        snippet = html_to_text(summary or content)
        if snippet:
            snippet = truncate_text(snippet, self.snippet_max_length)

        return FeedItem(
            title=(entry.get("title") or "").strip(),
            link=_clean(entry.get("link")),
            guid=_clean(entry.get("id")),
            author=_clean(entry.get("author")),
            published_at=_entry_date(entry),
            content_snippet=snippet or None,
            content=content,
            image_url=_entry_image(entry, content),
        )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _entry_image(entry: Any, content: Optional[str]) -> Optional[str]:
    """Enclosure, then media:content, then media:thumbnail, then the first <img> in the content"""
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/") and _clean(enclosure.get("href")):
            return _clean(enclosure.get("href"))

    for media in entry.get("media_content") or []:
        medium = media.get("medium") or ""
        media_type = media.get("type") or ""
        if medium and medium != "image":
            continue
        if media_type and not media_type.startswith("image/"):
            continue
        if _clean(media.get("url")):
            return _clean(media.get("url"))

    for thumbnail in entry.get("media_thumbnail") or []:
        if _clean(thumbnail.get("url")):
            return _clean(thumbnail.get("url"))

    return first_image_url(content)


def _entry_date(entry: Any) -> Optional[datetime]:
    """Published date, else updated date; anything unparseable is None"""
    for key in ("published_parsed", "updated_parsed"):
        struct = entry.get(key)
        if not struct:
            continue
        try:
            return datetime(*struct[:6], tzinfo=timezone.utc)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unusable {key} value: {struct!r}")
    return None
