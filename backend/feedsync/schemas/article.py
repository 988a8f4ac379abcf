from pydantic import BaseModel
from datetime import datetime
from uuid import UUID
from typing import Dict, List, Optional


class TrackedArticleResponse(BaseModel):
    id: UUID
    feed_id: UUID
    guid: str
    title: str
    link: Optional[str] = None
    author: Optional[str] = None
    pub_date: Optional[datetime] = None
    content_snippet: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    first_seen_at: datetime

    # Read state
    is_read: bool
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Request schemas for status updates
class MarkManyReadRequest(BaseModel):
    article_ids: List[UUID]


class MarkManyReadResponse(BaseModel):
    marked: int


class UnreadCountsResponse(BaseModel):
    counts: Dict[UUID, int]
    total: int
