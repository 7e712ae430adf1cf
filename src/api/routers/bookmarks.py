"""Bookmark endpoints: owner-scoped list, count, create, delete."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_change_feed, get_current_user
from models.user import User
from schemas.bookmark import BookmarkCountResponse, BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeType
from services import bookmark_service
from services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.get("/", response_model=list[BookmarkResponse])
async def list_bookmarks(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> list[BookmarkResponse]:
    """List every bookmark owned by the current user, newest first."""
    bookmarks = await bookmark_service.list_bookmarks(db, current_user.id)
    return [BookmarkResponse.model_validate(b) for b in bookmarks]


@router.get("/count", response_model=BookmarkCountResponse)
async def count_bookmarks(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkCountResponse:
    """Count bookmarks owned by the current user."""
    count = await bookmark_service.count_bookmarks(db, current_user.id)
    return BookmarkCountResponse(count=count)


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    change_feed: ChangeFeed = Depends(get_change_feed),
) -> BookmarkResponse:
    """Create a new bookmark."""
    bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    response = BookmarkResponse.model_validate(bookmark)
    # Commit before notifying so subscribers re-read committed state
    await db.commit()
    await change_feed.publish(ChangeEvent(type=ChangeType.INSERT, record_id=response.id))
    return response


@router.delete("/{bookmark_id}", status_code=204)
async def delete_bookmark(
    bookmark_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    change_feed: ChangeFeed = Depends(get_change_feed),
) -> None:
    """Delete a bookmark owned by the current user."""
    deleted = await bookmark_service.delete_bookmark(db, current_user.id, bookmark_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    await db.commit()
    await change_feed.publish(ChangeEvent(type=ChangeType.DELETE, record_id=bookmark_id))
