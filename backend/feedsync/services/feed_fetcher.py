import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from feedsync.core.config import settings
from feedsync.core.exceptions import FetchError, FetchErrorKind

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


@dataclass
class FetchedDocument:
    """Raw response body of a successful fetch"""

    url: str  # Final URL after redirects
    status_code: int
    content: bytes
    content_type: Optional[str] = None
    truncated: bool = False


class FeedFetcher:
    """
    Retrieve raw bytes from an http(s) URL.

    Redirects are followed by hand so the configured bound applies whatever
    client is injected. Every failure is raised as a typed FetchError; this
    layer never retries.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.max_redirects = max_redirects if max_redirects is not None else settings.FETCH_MAX_REDIRECTS
        self.user_agent = user_agent or settings.FETCH_USER_AGENT
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def validate_url(url: str) -> str:
        """
        Check that a URL is absolute and uses http or https.

        Raises:
            FetchError: INVALID_URL otherwise
        """
        if not url or not isinstance(url, str):
            raise FetchError(FetchErrorKind.INVALID_URL, str(url), detail="empty URL")

        parsed = urlparse(url.strip())
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise FetchError(
                FetchErrorKind.INVALID_URL,
                url,
                detail=f"unsupported scheme '{parsed.scheme}'",
            )
        if not parsed.netloc:
            raise FetchError(FetchErrorKind.INVALID_URL, url, detail="missing host")
        return url.strip()

    async def fetch(self, url: str, max_bytes: Optional[int] = None) -> FetchedDocument:
        """
        Fetch a URL and return its body.

        Args:
            url: Absolute http(s) URL
            max_bytes: Stop reading the body after this many bytes

        Returns:
            FetchedDocument for the final (post-redirect) URL

        Raises:
            FetchError: TIMEOUT, UNREACHABLE, HTTP_STATUS, TOO_MANY_REDIRECTS or INVALID_URL
        """
        url = self.validate_url(url)

        try:
            return await asyncio.wait_for(self._fetch(url, max_bytes), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {self.timeout}s fetching {url}")
            raise FetchError(FetchErrorKind.TIMEOUT, url, detail=f"no response within {self.timeout}s")

    async def _fetch(self, url: str, max_bytes: Optional[int]) -> FetchedDocument:
        current_url = url
        headers = {"User-Agent": self.user_agent}

        for _ in range(self.max_redirects + 1):
            try:
                async with self._client.stream(
                    "GET", current_url, headers=headers, follow_redirects=False
                ) as response:
                    if response.is_redirect:
                        location = response.headers["location"]
                        next_url = urljoin(str(response.url), location)
                        logger.debug(f"Redirect {response.status_code}: {current_url} -> {next_url}")
                        current_url = self.validate_url(next_url)
                        continue

                    if not response.is_success:
                        raise FetchError(
                            FetchErrorKind.HTTP_STATUS,
                            current_url,
                            status_code=response.status_code,
                        )

                    content, truncated = await self._read_body(response, max_bytes)
                    return FetchedDocument(
                        url=str(response.url),
                        status_code=response.status_code,
                        content=content,
                        content_type=response.headers.get("content-type"),
                        truncated=truncated,
                    )

            except httpx.TimeoutException as e:
                raise FetchError(FetchErrorKind.TIMEOUT, current_url, detail=type(e).__name__)
            except httpx.InvalidURL as e:
                raise FetchError(FetchErrorKind.INVALID_URL, current_url, detail=str(e))
            except httpx.RequestError as e:
                # DNS, refused connection, TLS and protocol failures
                raise FetchError(FetchErrorKind.UNREACHABLE, current_url, detail=f"{type(e).__name__}: {e}")

        raise FetchError(
            FetchErrorKind.TOO_MANY_REDIRECTS,
            url,
            detail=f"more than {self.max_redirects} redirects",
        )

    @staticmethod
    async def _read_body(response: httpx.Response, max_bytes: Optional[int]) -> tuple[bytes, bool]:
        if max_bytes is None:
            return await response.aread(), False

        chunks = []
        received = 0
        async for chunk in response.aiter_bytes():
            remaining = max_bytes - received
            if len(chunk) > remaining:
                chunks.append(chunk[:remaining])
                return b"".join(chunks), True
            chunks.append(chunk)
            received += len(chunk)
        return b"".join(chunks), False
