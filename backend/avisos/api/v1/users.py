"""User management endpoints."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status
from loguru import logger
from sqlalchemy import select

from avisos.core.dependencies import Admin, AnyMember, DBSession, Publisher
from avisos.core.logging import record_validation_error
from avisos.core.security import PasswordValidationError, hash_password
from avisos.models.user import User
from avisos.schemas.user import UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/users")


async def _get_user(session: DBSession, user_id: int) -> User:
    user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "user_not_found", "message": "User not found."}},
        )
    return user


async def _ensure_email_free(session: DBSession, email: str, *, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": {"code": "user_exists", "message": "Email already registered."}},
        )


def _hash_or_reject(request: Request, password: str) -> str:
    try:
        return hash_password(password)
    except PasswordValidationError as exc:
        record_validation_error(request, "weak_password")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "weak_password", "message": str(exc)}},
        ) from exc


@router.get("", response_model=list[UserOut])
async def list_users(session: DBSession, _: AnyMember) -> list[UserOut]:
    users = (await session.execute(select(User).order_by(User.id.asc()))).scalars().all()
    return [UserOut.model_validate(user) for user in users]


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, request: Request, session: DBSession, admin: Admin) -> UserOut:
    """Create a board member (administrators only)."""

    email = payload.email.strip().lower()
    await _ensure_email_free(session, email)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=_hash_or_reject(request, payload.password),
        role=payload.role,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.bind(event="admin.action", admin_id=admin.id, target_user_id=user.id).info("user_created")
    return UserOut.model_validate(user)


@router.get("/{user_id}", response_model=UserOut)
async def read_user(user_id: int, session: DBSession, _: AnyMember) -> UserOut:
    return UserOut.model_validate(await _get_user(session, user_id))


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    session: DBSession,
    _: Publisher,
) -> UserOut:
    user = await _get_user(session, user_id)
    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.email is not None:
        email = payload.email.strip().lower()
        await _ensure_email_free(session, email, exclude_id=user.id)
        user.email = email
    if payload.password is not None:
        user.password_hash = _hash_or_reject(request, payload.password)
    if payload.role is not None:
        user.role = payload.role
    await session.commit()
    await session.refresh(user)
    return UserOut.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: int, session: DBSession, admin: Admin) -> Response:
    user = await _get_user(session, user_id)
    await session.delete(user)
    await session.commit()
    logger.bind(event="admin.action", admin_id=admin.id, target_user_id=user_id).info("user_deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
