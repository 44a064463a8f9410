"""Password and role rules for board members."""
from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Final, cast

from passlib.context import CryptContext  # type: ignore[import-untyped]

from avisos.models.user import UserRole

if TYPE_CHECKING:
    from avisos.models.comment import Comment
    from avisos.models.user import User

MIN_PASSWORD_LENGTH: Final[int] = 6
# bcrypt silently ignores input past this many bytes.
MAX_PASSWORD_BYTES: Final[int] = 72

_hasher = CryptContext(schemes=["bcrypt"], bcrypt__rounds=10, deprecated="auto")


class PasswordValidationError(ValueError):
    """The password does not meet the board's password rules."""


class Permission(str, enum.Enum):
    READ = "read"
    PUBLISH = "publish"
    ADMINISTER = "administer"


ROLE_PERMISSIONS: Final[dict[UserRole, frozenset[Permission]]] = {
    UserRole.ADMIN: frozenset({Permission.READ, Permission.PUBLISH, Permission.ADMINISTER}),
    UserRole.EDITOR: frozenset({Permission.READ, Permission.PUBLISH}),
    UserRole.VIEWER: frozenset({Permission.READ}),
}


def check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if not password.strip():
        raise PasswordValidationError("Password must not be blank.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordValidationError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes.")


def hash_password(password: str) -> str:
    """Check ``password`` against the rules and return its bcrypt hash."""

    check_password(password)
    return cast(str, _hasher.hash(password))


def verify_password(password: str, password_hash: str) -> bool:
    return bool(_hasher.verify(password, password_hash))


def has_permission(role: UserRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def can_delete_comment(user: "User", comment: "Comment") -> bool:
    """Authors may remove their own comments; administrators may remove any."""

    return comment.author_id == user.id or has_permission(user.role, Permission.ADMINISTER)


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "Permission",
    "PasswordValidationError",
    "ROLE_PERMISSIONS",
    "can_delete_comment",
    "check_password",
    "has_permission",
    "hash_password",
    "verify_password",
]
