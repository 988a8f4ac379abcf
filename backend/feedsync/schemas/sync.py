from pydantic import BaseModel
from datetime import datetime
from uuid import UUID
from typing import List, Optional

from feedsync.services.feed_sync import AnnotatedFeedItem, SyncResult


class SyncedItemResponse(BaseModel):
    """A feed item as just fetched, annotated with its read state"""
    tracked_article_id: UUID
    identity: str
    title: str
    link: Optional[str] = None
    guid: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    content_snippet: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    is_new: bool

    @classmethod
    def from_annotated(cls, annotated: AnnotatedFeedItem) -> "SyncedItemResponse":
        item = annotated.item
        return cls(
            tracked_article_id=annotated.tracked_article_id,
            identity=annotated.identity,
            title=item.title,
            link=item.link,
            guid=item.guid,
            author=item.author,
            published_at=item.published_at,
            content_snippet=item.content_snippet,
            content=item.content,
            image_url=item.image_url,
            is_read=annotated.is_read,
            read_at=annotated.read_at,
            is_new=annotated.is_new,
        )


class SyncResponse(BaseModel):
    feed_id: UUID
    feed_title: str
    new_count: int
    existing_count: int
    synced_at: datetime
    items: List[SyncedItemResponse]

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResponse":
        return cls(
            feed_id=result.feed_id,
            feed_title=result.feed_title,
            new_count=result.new_count,
            existing_count=result.existing_count,
            synced_at=result.synced_at,
            items=[SyncedItemResponse.from_annotated(item) for item in result.items],
        )


class RefreshResponse(BaseModel):
    success: bool
    feeds_refreshed: int
    total_added: int
    total_existing: int
    errors: List[str] = []
