"""
Custom exceptions for the feed synchronization service.

Two families live here:

* Domain errors raised by the fetch / parse / discovery / sync pipeline and the
  read-state store. They carry enough detail (kind, phase, cause) for logging
  and are translated to HTTP responses by the handlers registered in main.py.
* HTTP errors raised directly by the API and service layer.
"""

from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    HTTP_STATUS = "http_status"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    INVALID_URL = "invalid_url"


class FetchError(Exception):
    """Raised when a URL cannot be retrieved."""

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.url = url
        self.status_code = status_code
        self.detail = detail
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.kind == FetchErrorKind.HTTP_STATUS:
            message = f"HTTP {self.status_code} fetching {self.url}"
        else:
            message = f"{self.kind.value.replace('_', ' ')} fetching {self.url}"
        if self.detail:
            message = f"{message}: {self.detail}"
        return message

    @property
    def is_transient(self) -> bool:
        """Whether retrying the same request may succeed"""
        if self.kind in (FetchErrorKind.TIMEOUT, FetchErrorKind.UNREACHABLE):
            return True
        if self.kind == FetchErrorKind.HTTP_STATUS:
            return self.status_code is not None and self.status_code >= 500
        return False


class ParseErrorKind(str, Enum):
    MALFORMED = "malformed"
    UNSUPPORTED_FORMAT = "unsupported_format"


class ParseError(Exception):
    """Raised when feed bytes cannot be turned into a feed document."""

    def __init__(self, kind: ParseErrorKind, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        message = f"{kind.value.replace('_', ' ')} feed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DiscoveryError(Exception):
    """Raised when the root page of a site cannot be fetched during discovery."""

    def __init__(self, cause: FetchError):
        self.cause = cause
        super().__init__(f"Feed discovery failed: {cause}")


class SyncError(Exception):
    """Raised when a feed sync fails before touching the read-state store."""

    PHASE_FETCH = "fetch"
    PHASE_PARSE = "parse"

    def __init__(self, phase: str, cause: Exception, feed_url: str):
        self.phase = phase
        self.cause = cause
        self.feed_url = feed_url
        super().__init__(f"Sync of {feed_url} failed during {phase}: {cause}")

    @property
    def kind(self) -> str:
        kind = getattr(self.cause, "kind", None)
        return kind.value if kind is not None else "unknown"

    @property
    def user_message(self) -> str:
        """Short message suitable for display next to the stale feed content"""
        if self.phase == self.PHASE_PARSE:
            return "Could not read this feed."
        if isinstance(self.cause, FetchError) and self.cause.kind == FetchErrorKind.HTTP_STATUS:
            return f"The feed server responded with HTTP {self.cause.status_code}."
        if isinstance(self.cause, FetchError) and self.cause.kind == FetchErrorKind.TIMEOUT:
            return "The feed server took too long to respond."
        return "Could not reach this feed."


class OwnershipError(Exception):
    """
    Raised when a caller touches feeds or tracked articles of another user.

    This always indicates a caller bug; the operation is refused.
    """

    def __init__(self, resource: str, resource_id, user_id):
        self.resource = resource
        self.resource_id = resource_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not the owner of {resource} {resource_id}")


# ---------------------------------------------------------------------------
# HTTP errors
# ---------------------------------------------------------------------------

class FeedNotFoundError(HTTPException):
    """Raised when a feed is not found."""
    def __init__(self, detail: str = "Feed not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class FolderNotFoundError(HTTPException):
    """Raised when a folder is not found."""
    def __init__(self, detail: str = "Folder not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ArticleNotFoundError(HTTPException):
    """Raised when a tracked article is not found."""
    def __init__(self, detail: str = "Article not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class UnauthorizedError(HTTPException):
    """Raised when user is not authorized to perform an action."""
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class DuplicateFeedError(HTTPException):
    """Raised when a user subscribes twice to the same feed URL."""
    def __init__(self, detail: str = "You are already subscribed to this feed."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ValidationError(HTTPException):
    """Raised when validation fails."""
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
