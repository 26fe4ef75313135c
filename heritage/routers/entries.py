from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from heritage.auth import get_current_user, require_admin
from heritage.database import get_db
from heritage.dependencies import ListParams
from heritage.schemas import Caller, CommentCreate, EntryCreate, EntryListResponse, EntryUpdate, LikeResponse
from heritage.services import comment_service, entry_service

router = APIRouter(prefix="/api/entries", tags=["entries"])

@router.get("", response_model=EntryListResponse)
async def list_entries(params: ListParams = Depends(), db: AsyncSession = Depends(get_db)):
    return await entry_service.list_entries(
        db, params.search, params.category, params.sort, params.page, params.limit
    )

@router.get("/slug/{slug}")
async def get_entry_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await entry_service.get_entry_by_slug(db, slug)

@router.get("/{entry_id}")
async def get_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    return await entry_service.get_entry(db, entry_id)

@router.post("", status_code=201)
async def create_entry(
    data: EntryCreate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entry = await entry_service.create_entry(db, data, caller)
    return {"message": "Entry created successfully", "entry": entry}

@router.put("/{entry_id}")
async def update_entry(
    entry_id: int,
    data: EntryUpdate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    entry = await entry_service.update_entry(db, entry_id, data)
    return {"message": "Entry updated successfully", "entry": entry}

@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: int,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await entry_service.delete_entry(db, entry_id)
    return {"message": "Entry deleted successfully"}

@router.post("/{entry_id}/like", response_model=LikeResponse)
async def like_entry(
    entry_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await entry_service.toggle_like(db, entry_id, caller)

@router.get("/{entry_id}/comments")
async def list_comments(entry_id: int, db: AsyncSession = Depends(get_db)):
    return {"comments": await comment_service.list_comments(db, entry_id)}

@router.post("/{entry_id}/comment", status_code=201)
async def add_comment(
    entry_id: int,
    data: CommentCreate,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comments = await comment_service.add_comment(db, entry_id, data, caller)
    return {"message": "Comment added", "comments": comments}

@router.delete("/{entry_id}/comment/{comment_id}")
async def delete_comment(
    entry_id: int,
    comment_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, entry_id, comment_id, caller)
    return {"message": "Comment deleted"}
