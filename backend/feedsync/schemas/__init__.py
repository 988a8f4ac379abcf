from .feed import (
    FeedValidateRequest,
    FeedValidateResponse,
    FeedCreate,
    FeedUpdate,
    FeedResponse,
    DiscoveredFeedResponse,
    FeedImportEntry,
    FeedImportRequest,
    FeedImportResponse,
    FeedCacheStatsResponse,
    FeedCacheClearResponse,
)
from .folder import FolderCreate, FolderUpdate, FolderResponse
from .article import TrackedArticleResponse, MarkManyReadRequest, MarkManyReadResponse, UnreadCountsResponse
from .sync import SyncedItemResponse, SyncResponse, RefreshResponse

__all__ = [
    "FeedValidateRequest",
    "FeedValidateResponse",
    "FeedCreate",
    "FeedUpdate",
    "FeedResponse",
    "DiscoveredFeedResponse",
    "FeedImportEntry",
    "FeedImportRequest",
    "FeedImportResponse",
    "FeedCacheStatsResponse",
    "FeedCacheClearResponse",
    "FolderCreate",
    "FolderUpdate",
    "FolderResponse",
    "TrackedArticleResponse",
    "MarkManyReadRequest",
    "MarkManyReadResponse",
    "UnreadCountsResponse",
    "SyncedItemResponse",
    "SyncResponse",
    "RefreshResponse",
]
