from __future__ import annotations

import datetime as dt

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.core.jwt import issue_access_token
from avisos.core.security import hash_password
from avisos.models.announcement import Announcement
from avisos.models.comment import Comment
from avisos.models.user import User, UserRole
from avisos.schemas.comment import AnnouncementRef, CommentAuthor, CommentOut

DEFAULT_PASSWORD = "StrongPass1"


async def create_user(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    password: str = DEFAULT_PASSWORD,
    role: UserRole = UserRole.VIEWER,
) -> User:
    user = User(name=name, email=email.lower(), password_hash=hash_password(password), role=role)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_announcement(
    session: AsyncSession,
    *,
    creator: User,
    title: str = "Weekly update",
    week_start: dt.date = dt.date(2024, 5, 6),
    week_end: dt.date = dt.date(2024, 5, 12),
    announcement_id: int | None = None,
) -> Announcement:
    announcement = Announcement(
        title=title,
        description="Details for the week",
        week_start=week_start,
        week_end=week_end,
        created_by=creator.id,
    )
    if announcement_id is not None:
        announcement.id = announcement_id
    session.add(announcement)
    await session.commit()
    await session.refresh(announcement)
    return announcement


async def create_comment(
    session: AsyncSession,
    *,
    announcement: Announcement,
    author: User,
    body: str = "Nice",
    created_at: dt.datetime | None = None,
) -> Comment:
    comment = Comment(announcement_id=announcement.id, author_id=author.id, body=body)
    if created_at is not None:
        comment.created_at = created_at
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    return comment


def access_token(user: User) -> str:
    return issue_access_token(user).token


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token(user)}"}


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def make_comment(comment_id: int, announcement_id: int, body: str = "hello") -> CommentOut:
    """Build a comment projection without touching the database."""

    return CommentOut(
        id=comment_id,
        announcement_id=announcement_id,
        body=body,
        created_at=dt.datetime(2024, 5, 6, 12, 0, tzinfo=dt.timezone.utc),
        author=CommentAuthor(id=1, name="Ana", email="ana@example.com"),
        announcement=AnnouncementRef(id=announcement_id, title=f"Aviso {announcement_id}"),
    )
