"""Comment endpoints: the write path that feeds the realtime stream."""
from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, HTTPException, Query, Response, status
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from avisos.core.dependencies import AnyMember, DBSession, EventBusDep
from avisos.core.security import can_delete_comment
from avisos.models.announcement import Announcement
from avisos.models.comment import Comment
from avisos.models.user import User
from avisos.schemas.comment import CommentCreate, CommentOut, CommentPage
from avisos.services.comments import create_comment, load_comment_with_context, serialize_comment
from avisos.services.events import COMMENT_CREATED

router = APIRouter(prefix="/comments")


def _with_context(stmt):
    return stmt.options(selectinload(Comment.author), selectinload(Comment.announcement))


async def _ensure_announcement(session: DBSession, announcement_id: int) -> None:
    found = (
        await session.execute(select(Announcement.id).where(Announcement.id == announcement_id))
    ).scalar_one_or_none()
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "announcement_not_found", "message": "Announcement not found."}},
        )


@router.get("", response_model=CommentPage)
async def list_comments(
    session: DBSession,
    _: AnyMember,
    user: str | None = Query(default=None, description="Author id or part of the author name"),
    since: dt.datetime | None = Query(default=None),
    until: dt.datetime | None = Query(default=None),
    announcement: int | None = Query(default=None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> CommentPage:
    """Search comments across every announcement, newest first."""

    filters = []
    if user:
        term = user.strip()
        if term.isdigit():
            filters.append(Comment.author_id == int(term))
        else:
            filters.append(Comment.author.has(User.name.ilike(f"%{term}%")))
    if since is not None:
        filters.append(Comment.created_at >= since)
    if until is not None:
        filters.append(Comment.created_at <= until)
    if announcement is not None:
        filters.append(Comment.announcement_id == announcement)

    total = (await session.execute(select(func.count(Comment.id)).where(*filters))).scalar_one()
    stmt = _with_context(
        select(Comment)
        .where(*filters)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    comments = (await session.execute(stmt)).scalars().all()
    return CommentPage(
        items=[serialize_comment(comment) for comment in comments],
        total=int(total),
        page=page,
        limit=limit,
    )


@router.get("/announcement/{announcement_id}", response_model=list[CommentOut])
async def list_announcement_comments(announcement_id: int, session: DBSession, _: AnyMember) -> list[CommentOut]:
    await _ensure_announcement(session, announcement_id)
    stmt = _with_context(
        select(Comment)
        .where(Comment.announcement_id == announcement_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    return [serialize_comment(comment) for comment in (await session.execute(stmt)).scalars().all()]


@router.post("", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def post_comment(
    payload: CommentCreate,
    session: DBSession,
    user: AnyMember,
    bus: EventBusDep,
) -> CommentOut:
    """Persist a comment and announce it to realtime subscribers.

    The ``comment:created`` event is published only after the commit, so a
    failed write never reaches connected clients.
    """

    await _ensure_announcement(session, payload.announcement_id)
    comment = await create_comment(
        session,
        announcement_id=payload.announcement_id,
        author_id=user.id,
        body=payload.body,
    )
    bus.publish(COMMENT_CREATED, comment.id)
    logger.bind(comment_id=comment.id, announcement_id=comment.announcement_id, user_id=user.id).info(
        "comment_created"
    )

    loaded = await load_comment_with_context(session, comment.id)
    if loaded is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "comment_not_found", "message": "Comment not found."}},
        )
    return serialize_comment(loaded)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(comment_id: int, session: DBSession, user: AnyMember) -> Response:
    comment = (await session.execute(select(Comment).where(Comment.id == comment_id))).scalar_one_or_none()
    if comment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "comment_not_found", "message": "Comment not found."}},
        )
    if not can_delete_comment(user, comment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "forbidden", "message": "Only the author or an admin may delete it."}},
        )
    await session.delete(comment)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
