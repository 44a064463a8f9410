"""Health report: database reachability and the realtime comment stream."""
from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI
from loguru import logger

from avisos.core.config import get_settings
from avisos.core.database import check_connection
from avisos.services.events import COMMENTS_CHANNEL_PATH

_STARTED_AT = time.monotonic()


async def database_status(timeout_seconds: float = 2.0) -> dict[str, str]:
    try:
        await asyncio.wait_for(check_connection(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.bind(timeout=timeout_seconds).warning("database_check_timeout")
        return {"state": "degraded", "reason": f"No answer within {timeout_seconds} seconds"}
    except Exception as exc:
        logger.exception("database_check_failed")
        return {"state": "down", "reason": str(exc)}
    return {"state": "ok"}


def realtime_status(app: FastAPI) -> dict[str, Any]:
    """Audience of the comment stream and broadcasts still in flight."""

    return {
        "channel": COMMENTS_CHANNEL_PATH,
        "connected_clients": app.state.comment_gateway.connected_clients(),
        "pending_broadcasts": app.state.comment_broadcaster.pending,
    }


async def build_health_payload(app: FastAPI) -> dict[str, Any]:
    database = await database_status()
    return {
        "status": "ok" if database["state"] == "ok" else "degraded",
        "uptime_seconds": round(time.monotonic() - _STARTED_AT, 2),
        "db_status": database,
        "realtime": realtime_status(app),
        "version": get_settings().git_sha or "unknown",
    }


__all__ = ["build_health_payload", "database_status", "realtime_status"]
