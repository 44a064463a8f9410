from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, Iterator, cast

from loguru import logger

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.types import ASGIApp

# Configure environment for tests before importing the app
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///./test_avisos.db")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("ACCESS_TOKEN_EXPIRES_MIN", "15")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", '["http://testserver"]')
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("ADMIN_PASSWORD", "Admin1234!")
os.environ.setdefault("METRICS_ENABLED", "true")
logger.remove()

from avisos.api.v1.auth import login_throttle  # noqa: E402
from avisos.core.database import create_schema, dispose_engine, get_session_factory  # noqa: E402
from avisos.main import app  # noqa: E402
from avisos.models import Announcement, AnnouncementImage, Comment, User, WeeklyMetric  # noqa: E402

_DB_PATH = Path("test_avisos.db")


@pytest.fixture(scope="session", autouse=True)
def database_schema() -> Iterator[None]:
    if _DB_PATH.exists():
        _DB_PATH.unlink()
    asyncio.run(create_schema())
    yield
    asyncio.run(dispose_engine())
    if _DB_PATH.exists():
        _DB_PATH.unlink()


@pytest.fixture()
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=cast(ASGIApp, app))  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await app.state.comment_broadcaster.drain()


@pytest.fixture()
async def session() -> AsyncIterator[AsyncSession]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def clean_tables() -> AsyncIterator[None]:
    """Start every test with empty tables and a fresh login limiter."""

    await login_throttle.clear()
    yield
    session_factory = get_session_factory()
    async with session_factory() as session:
        for model in (Comment, AnnouncementImage, Announcement, WeeklyMetric, User):
            await session.execute(delete(model))
        await session.commit()
