"""Comment persistence helpers used by the write path and the broadcaster."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from avisos.models.comment import Comment
from avisos.schemas.comment import CommentOut


async def create_comment(session: AsyncSession, *, announcement_id: int, author_id: int, body: str) -> Comment:
    comment = Comment(announcement_id=announcement_id, author_id=author_id, body=body)
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    return comment


async def load_comment_with_context(session: AsyncSession, comment_id: int) -> Comment | None:
    """Return the comment with author and announcement loaded, or ``None``."""

    stmt = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(selectinload(Comment.author), selectinload(Comment.announcement))
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


def serialize_comment(comment: Comment) -> CommentOut:
    return CommentOut.model_validate(comment)


__all__ = ["create_comment", "load_comment_with_context", "serialize_comment"]
