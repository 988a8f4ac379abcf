from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from feedsync.api.deps import get_current_user_id
from feedsync.core.database import get_db
from feedsync.schemas import FolderCreate, FolderResponse, FolderUpdate
from feedsync.services.feed_service import FeedService

router = APIRouter(prefix="/api", tags=["folders"])


@router.get("/folders", response_model=List[FolderResponse], tags=["Folders"])
async def list_folders(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    List the user's folders, alphabetically
    """
    return await FeedService.list_folders(db, user_id)


@router.post("/folders", response_model=FolderResponse, status_code=201, tags=["Folders"])
async def create_folder(
    folder: FolderCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await FeedService.create_folder(db, user_id, folder.name)


@router.patch("/folders/{folder_id}", response_model=FolderResponse, tags=["Folders"])
async def rename_folder(
    folder_id: UUID,
    update: FolderUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await FeedService.rename_folder(db, folder_id, user_id, update.name)


@router.delete("/folders/{folder_id}", tags=["Folders"])
async def delete_folder(
    folder_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Delete a folder; its feeds are kept outside any folder
    """
    return await FeedService.delete_folder(db, folder_id, user_id)
