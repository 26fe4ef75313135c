"""
Comment service — comment lifecycle for the Entry aggregate.

Each comment is its own row, so adding one is a single INSERT and deleting
one a single DELETE; neither rewrites the entry or its other comments.
Display order is insertion order (ascending comment id).

``user_name`` is copied from the caller when the comment is written and is
not updated if the user later renames.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from heritage.cache import invalidate_entries_on_commit
from heritage.exceptions import ForbiddenError, NotFoundError
from heritage.models import Comment
from heritage.schemas import Caller, CommentCreate
from heritage.services.entry_service import comment_to_dict, entry_exists, touch_entry

logger = logging.getLogger(__name__)


async def _comments_for(db: AsyncSession, entry_id: int) -> list[dict]:
    q = (
        select(Comment)
        .where(Comment.entry_id == entry_id)
        .options(joinedload(Comment.user))
        .order_by(Comment.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return [comment_to_dict(c) for c in result.scalars().all()]


async def list_comments(db: AsyncSession, entry_id: int) -> list[dict]:
    """Return the entry's comments in display order."""
    if not await entry_exists(db, entry_id):
        raise NotFoundError()
    return await _comments_for(db, entry_id)


async def add_comment(
    db: AsyncSession,
    entry_id: int,
    data: CommentCreate,
    caller: Caller,
) -> list[dict]:
    """
    Append a comment by *caller* to the entry and return the entry's full
    comment list, each with its author resolved to ``{id, name}``.
    """
    if not await touch_entry(db, entry_id):
        raise NotFoundError()

    comment = Comment(
        entry_id=entry_id,
        user_id=caller.id,
        user_name=caller.name,
        text=data.text,
    )
    db.add(comment)
    await db.flush()

    logger.info("Comment %d added to entry %d by user %d", comment.id, entry_id, caller.id)
    invalidate_entries_on_commit(db)
    return await _comments_for(db, entry_id)


async def delete_comment(
    db: AsyncSession,
    entry_id: int,
    comment_id: int,
    caller: Caller,
) -> None:
    """
    Remove one comment.  Existence of the entry, then of the comment, is
    checked before authorship: only the comment's author or an admin may
    delete it.
    """
    if not await entry_exists(db, entry_id):
        raise NotFoundError()

    q = select(Comment).where(Comment.id == comment_id, Comment.entry_id == entry_id)
    comment = (await db.execute(q)).scalar_one_or_none()
    if comment is None:
        raise NotFoundError("Comment not found")

    if comment.user_id != caller.id and not caller.is_admin:
        raise ForbiddenError()

    await db.execute(delete(Comment).where(Comment.id == comment_id))
    await touch_entry(db, entry_id)

    logger.info("Comment %d deleted from entry %d by user %d", comment_id, entry_id, caller.id)
    invalidate_entries_on_commit(db)
