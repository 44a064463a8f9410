from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.api.v1.auth import login_throttle
from avisos.core.config import get_settings
from avisos.core.rate_limiter import LoginThrottle
from avisos.tests.utils import create_user


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_login_rate_limit_enforced(client: AsyncClient, session: AsyncSession) -> None:
    await create_user(session, name="Rate", email="ratelimit@example.com", password="CorrectPass1")

    for _ in range(5):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "ratelimit@example.com", "password": "WrongPass1"},
        )
        assert response.status_code == 401

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "ratelimit@example.com", "password": "WrongPass1"},
    )
    assert response.status_code == 429
    error = response.json()["error"]
    assert error["code"] == "too_many_attempts"
    assert error["retry_after"] == 300

    await login_throttle.clear("127.0.0.1")

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "ratelimit@example.com", "password": "CorrectPass1"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_successful_login_clears_attempts(client: AsyncClient, session: AsyncSession) -> None:
    await create_user(session, name="Rate", email="clears@example.com", password="CorrectPass1")

    for _ in range(3):
        await client.post("/api/v1/auth/login", json={"email": "clears@example.com", "password": "WrongPass1"})
    ok = await client.post("/api/v1/auth/login", json={"email": "clears@example.com", "password": "CorrectPass1"})
    assert ok.status_code == 200

    for _ in range(4):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "clears@example.com", "password": "WrongPass1"},
        )
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_forwarded_address_is_throttled_separately(client: AsyncClient, session: AsyncSession) -> None:
    await create_user(session, name="Proxy", email="proxy@example.com", password="CorrectPass1")
    wrong = {"email": "proxy@example.com", "password": "WrongPass1"}

    for _ in range(5):
        await client.post("/api/v1/auth/login", json=wrong, headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    blocked = await client.post("/api/v1/auth/login", json=wrong, headers={"X-Forwarded-For": "203.0.113.7"})
    assert blocked.status_code == 429

    other = await client.post("/api/v1/auth/login", json=wrong, headers={"X-Forwarded-For": "198.51.100.2"})
    assert other.status_code == 401


def test_login_throttle_uses_configured_limits() -> None:
    settings = get_settings()

    assert login_throttle.attempts == settings.login_rate_limit_attempts == 5
    assert login_throttle.window_seconds == 60
    assert login_throttle.block_seconds == 300


@pytest.mark.asyncio
async def test_block_lifts_after_block_period() -> None:
    clock = _Clock()
    throttle = LoginThrottle(attempts=2, window_seconds=60, block_seconds=30, clock=clock)

    assert (await throttle.hit("a")).allowed
    assert (await throttle.hit("a")).allowed
    blocked = await throttle.hit("a")
    assert not blocked.allowed
    assert blocked.retry_after == 30
    assert (await throttle.hit("b")).allowed

    clock.now += 10
    assert (await throttle.hit("a")).retry_after == 20

    clock.now += 21
    assert (await throttle.hit("a")).allowed


@pytest.mark.asyncio
async def test_attempts_outside_the_window_are_forgotten() -> None:
    clock = _Clock()
    throttle = LoginThrottle(attempts=2, window_seconds=60, block_seconds=30, clock=clock)

    await throttle.hit("a")
    clock.now += 30
    await throttle.hit("a")
    clock.now += 31

    assert (await throttle.hit("a")).allowed
