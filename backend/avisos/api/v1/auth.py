"""Authentication endpoints."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from loguru import logger
from sqlalchemy import select

from avisos.core.config import get_settings
from avisos.core.dependencies import CurrentUser, DBSession
from avisos.core.jwt import issue_access_token
from avisos.core.logging import mask_email
from avisos.core.metrics import record_auth_login
from avisos.core.rate_limiter import LoginThrottle
from avisos.core.security import verify_password
from avisos.models.user import User
from avisos.schemas import auth as auth_schema

router = APIRouter(prefix="/auth")

login_throttle = LoginThrottle.from_settings(get_settings())


@router.post("/login", response_model=auth_schema.LoginResponse)
async def login(
    payload: auth_schema.LoginRequest,
    request: Request,
    session: DBSession,
) -> auth_schema.LoginResponse:
    """Authenticate with email and password and return an access token."""

    decision = await login_throttle.check(request)
    if not decision.allowed:
        record_auth_login("rate_limited")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": {
                    "code": "too_many_attempts",
                    "message": "Too many login attempts. Please try again later.",
                    "retry_after": decision.retry_after,
                }
            },
        )

    email = payload.email.strip().lower()
    user = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        record_auth_login("failure")
        logger.bind(email=mask_email(email)).info("login_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "invalid_credentials", "message": "Invalid credentials."}},
        )

    issued = issue_access_token(user)
    await login_throttle.forgive(request)
    record_auth_login("success")

    return auth_schema.LoginResponse(token=issued.token, role=user.role, expires_in=issued.expires_in)


@router.get("/validate", response_model=auth_schema.ValidateResponse)
async def validate(user: CurrentUser) -> auth_schema.ValidateResponse:
    """Confirm that the bearer token is still valid."""

    return auth_schema.ValidateResponse(user=auth_schema.ValidatedUser.model_validate(user))
