"""Common FastAPI dependencies."""
from __future__ import annotations

from typing import Annotated, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.core.database import get_db_session
from avisos.core.jwt import InvalidTokenError, read_access_token
from avisos.core.security import Permission, has_permission
from avisos.models.user import User
from avisos.services.pubsub import EventBus

DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def _extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "unauthorized", "message": "Missing credentials."}},
        )
    return auth_header.split(" ", 1)[1]


async def get_current_user(request: Request, session: DBSession) -> User:
    """Resolve the user behind the bearer token."""

    raw_token = _extract_bearer_token(request)
    try:
        claims = read_access_token(raw_token)
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "invalid_token", "message": "Invalid or expired token."}},
        ) from exc

    user = (await session.execute(select(User).where(User.id == claims.sub))).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "user_not_found", "message": "User not found."}},
        )

    request.state.user = user
    request.state.user_id = user.id
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_permission(permission: Permission) -> Callable[..., Awaitable[User]]:
    """Build a dependency that only admits members whose role grants ``permission``."""

    async def _dependency(user: CurrentUser) -> User:
        if not has_permission(user.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": {"code": "forbidden", "message": "Insufficient permissions."}},
            )
        return user

    return _dependency


AnyMember = Annotated[User, Depends(require_permission(Permission.READ))]
Publisher = Annotated[User, Depends(require_permission(Permission.PUBLISH))]
Admin = Annotated[User, Depends(require_permission(Permission.ADMINISTER))]


def get_event_bus(request: Request) -> EventBus:
    """Return the event bus constructed for this application."""

    return request.app.state.event_bus


EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
