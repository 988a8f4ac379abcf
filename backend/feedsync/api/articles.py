from uuid import UUID

from fastapi import APIRouter, Depends

from feedsync.api.deps import get_current_user_id, get_read_state_store
from feedsync.schemas import (
    MarkManyReadRequest,
    MarkManyReadResponse,
    TrackedArticleResponse,
    UnreadCountsResponse,
)
from feedsync.services.read_state_store import ReadStateStore

router = APIRouter(prefix="/api", tags=["articles"])


@router.get("/articles/unread-counts", response_model=UnreadCountsResponse)
async def get_unread_counts(
    user_id: UUID = Depends(get_current_user_id),
    store: ReadStateStore = Depends(get_read_state_store),
):
    """
    Unread articles per feed
    """
    counts = await store.unread_counts(user_id)
    return UnreadCountsResponse(counts=counts, total=sum(counts.values()))


@router.post("/articles/read", response_model=MarkManyReadResponse)
async def mark_articles_read(
    request: MarkManyReadRequest,
    user_id: UUID = Depends(get_current_user_id),
    store: ReadStateStore = Depends(get_read_state_store),
):
    """
    Mark several articles as read, e.g. the batch flushed by the viewport tracker
    """
    marked = await store.mark_many_read(request.article_ids, user_id)
    return MarkManyReadResponse(marked=marked)


@router.patch("/articles/{article_id}/read", response_model=TrackedArticleResponse)
async def mark_article_read(
    article_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    store: ReadStateStore = Depends(get_read_state_store),
):
    """
    Mark an article as read
    """
    return await store.mark_read(article_id, user_id)
