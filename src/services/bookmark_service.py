"""Service layer for owner-scoped bookmark operations."""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate

logger = logging.getLogger(__name__)


async def create_bookmark(
    db: AsyncSession,
    user_id: int,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a new bookmark owned by user_id.

    The returned object carries the server-assigned id and created_at.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = Bookmark(
        user_id=user_id,
        title=data.title,
        url=data.url,
    )
    db.add(bookmark)
    await db.flush()
    await db.refresh(bookmark)
    logger.info("Created bookmark %s for user %s", bookmark.id, user_id)
    return bookmark


async def list_bookmarks(db: AsyncSession, user_id: int) -> list[Bookmark]:
    """Get every bookmark owned by user_id, newest first."""
    result = await db.execute(
        select(Bookmark)
        .where(Bookmark.user_id == user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc()),
    )
    return list(result.scalars().all())


async def count_bookmarks(db: AsyncSession, user_id: int) -> int:
    """Count bookmarks owned by user_id without loading them."""
    result = await db.execute(
        select(func.count()).select_from(Bookmark).where(Bookmark.user_id == user_id),
    )
    return result.scalar_one()


async def delete_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found or not owned.

    Ownership is part of the DELETE statement itself, so a bookmark belonging
    to another user is never touched regardless of what the caller checked.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    result = await db.execute(
        delete(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == user_id,
        ),
    )
    deleted = result.rowcount > 0
    if not deleted:
        logger.info("Delete of bookmark %s by user %s matched no rows", bookmark_id, user_id)
    return deleted
