"""Bootstrap data created on startup."""
from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.core.config import get_settings
from avisos.core.logging import mask_email
from avisos.core.security import hash_password
from avisos.models.user import User, UserRole


async def seed_admin(session: AsyncSession) -> User | None:
    """Create the configured administrator account when it does not exist."""

    settings = get_settings()
    email = settings.admin_email.strip().lower()
    existing = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if existing is not None:
        return None

    admin = User(
        name="Administrator",
        email=email,
        password_hash=hash_password(settings.admin_password.get_secret_value()),
        role=UserRole.ADMIN,
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    logger.bind(email=mask_email(email)).info("admin_seeded")
    return admin
