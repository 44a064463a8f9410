"""Database session and engine management."""
from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from avisos.core.config import get_settings

_settings = get_settings()


def _create_engine(url: str) -> AsyncEngine:
    # SQLite connections are bound to the event loop that opened them.
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(url, echo=False, poolclass=NullPool)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


_async_engine: AsyncEngine = _create_engine(_settings.db_url)
_async_session_factory = async_sessionmaker(_async_engine, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async SQLAlchemy session for request handling."""

    async with _async_session_factory() as session:
        yield session


async def create_schema() -> None:
    """Create any missing tables."""

    from avisos.models import Base

    async with _async_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the underlying engine (used in test teardown)."""

    await _async_engine.dispose()


async def check_connection() -> None:
    """Verify that the database connection is reachable."""

    async with _async_engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the underlying async session factory."""

    return _async_session_factory
