"""Signed session tokens carrying a member's id, role and email."""
from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from avisos.core.config import get_settings
from avisos.models.user import UserRole

if TYPE_CHECKING:
    from avisos.models.user import User


class InvalidTokenError(ValueError):
    """The token is malformed, expired or signed with another key."""


class AccessClaims(BaseModel):
    sub: int
    role: UserRole
    email: str
    jti: str
    iat: int
    exp: int


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    expires_at: dt.datetime
    expires_in: int


def issue_access_token(user: "User") -> IssuedToken:
    settings = get_settings()
    issued_at = dt.datetime.now(dt.timezone.utc)
    lifetime = dt.timedelta(minutes=settings.access_token_expires_min)
    claims = {
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email,
        "jti": uuid.uuid4().hex,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    }
    token = jwt.encode(claims, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm)
    return IssuedToken(token=token, expires_at=issued_at + lifetime, expires_in=int(lifetime.total_seconds()))


def read_access_token(token: str) -> AccessClaims:
    """Verify the signature and expiry of ``token`` and return its claims."""

    settings = get_settings()
    try:
        raw = jwt.decode(token, settings.jwt_secret.get_secret_value(), algorithms=[settings.jwt_algorithm])
        return AccessClaims.model_validate(raw)
    except (JWTError, ValidationError) as exc:
        raise InvalidTokenError("Invalid or expired token.") from exc


__all__ = ["AccessClaims", "InvalidTokenError", "IssuedToken", "issue_access_token", "read_access_token"]
