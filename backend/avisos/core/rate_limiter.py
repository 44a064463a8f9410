"""Throttle repeated login attempts coming from one client address."""
from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, NamedTuple

from fastapi import Request

from avisos.core.config import Settings


class ThrottleDecision(NamedTuple):
    allowed: bool
    retry_after: float | None


@dataclass(slots=True)
class _AddressWindow:
    attempts: deque[float] = field(default_factory=deque)
    blocked_until: float = 0.0


def client_address(request: Request) -> str:
    """The first ``X-Forwarded-For`` hop when behind a proxy, else the peer address."""

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class LoginThrottle:
    """Allow ``attempts`` logins per ``window_seconds``; then refuse for ``block_seconds``."""

    def __init__(
        self,
        *,
        attempts: int,
        window_seconds: float,
        block_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.attempts = attempts
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self._clock = clock
        self._windows: dict[str, _AddressWindow] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginThrottle":
        return cls(
            attempts=settings.login_rate_limit_attempts,
            window_seconds=float(settings.login_rate_limit_window_seconds),
            block_seconds=float(settings.login_rate_limit_block_seconds),
        )

    async def hit(self, address: str) -> ThrottleDecision:
        async with self._lock:
            now = self._clock()
            window = self._windows.setdefault(address, _AddressWindow())
            if window.blocked_until > now:
                return ThrottleDecision(False, window.blocked_until - now)

            while window.attempts and now - window.attempts[0] >= self.window_seconds:
                window.attempts.popleft()
            if len(window.attempts) >= self.attempts:
                window.attempts.clear()
                window.blocked_until = now + self.block_seconds
                return ThrottleDecision(False, self.block_seconds)

            window.attempts.append(now)
            return ThrottleDecision(True, None)

    async def check(self, request: Request) -> ThrottleDecision:
        return await self.hit(client_address(request))

    async def forgive(self, request: Request) -> None:
        await self.clear(client_address(request))

    async def clear(self, address: str | None = None) -> None:
        async with self._lock:
            if address is None:
                self._windows.clear()
            else:
                self._windows.pop(address, None)


__all__ = ["LoginThrottle", "ThrottleDecision", "client_address"]
