from pydantic import BaseModel
from datetime import datetime
from uuid import UUID
from typing import List, Optional


class FeedValidateRequest(BaseModel):
    url: str


class FeedValidateResponse(BaseModel):
    valid: bool
    url: str
    title: Optional[str] = None
    site_url: Optional[str] = None
    description: Optional[str] = None
    format: Optional[str] = None
    item_count: int = 0


class FeedCreate(BaseModel):
    url: str
    folder_id: Optional[UUID] = None
    title: Optional[str] = None


class FeedUpdate(BaseModel):
    """
    Schema for updating a feed subscription.

    All fields are optional - provide only the fields you want to update.
    Set remove_from_folder to move the feed out of its folder.
    """
    title: Optional[str] = None
    folder_id: Optional[UUID] = None
    remove_from_folder: bool = False

    class Config:
        json_schema_extra = {
            "examples": [
                {"title": "Hacker News"},
                {"folder_id": "6f1c1f8e-3f7e-4b53-9a43-1a2b3c4d5e6f"},
                {"remove_from_folder": True},
            ]
        }


class FeedResponse(BaseModel):
    id: UUID
    user_id: UUID
    folder_id: Optional[UUID] = None
    url: str
    title: str
    site_url: Optional[str] = None
    created_at: datetime
    last_synced_at: Optional[datetime] = None
    unread_count: int = 0

    class Config:
        from_attributes = True


class DiscoveredFeedResponse(BaseModel):
    url: str
    title: str
    type: str
    site_url: Optional[str] = None

    class Config:
        from_attributes = True


class FeedImportEntry(BaseModel):
    url: str
    folder_name: Optional[str] = None
    title: Optional[str] = None


class FeedImportRequest(BaseModel):
    feeds: List[FeedImportEntry]


class FeedImportResponse(BaseModel):
    imported: int
    skipped: int
    folders_created: int


class FeedCacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float


class FeedCacheClearResponse(BaseModel):
    cleared: int
