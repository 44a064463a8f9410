"""Loguru setup and the request/stream logging middleware."""
from __future__ import annotations

import sys
import time
import uuid
from collections.abc import MutableMapping
from typing import Any

from fastapi import Request
from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from avisos.core.metrics import observe_request, set_ws_client_gauge


def configure_logging(level: str = "INFO") -> None:
    """Send one serialized JSON record per line to stdout."""

    logger.remove()
    logger.add(sys.stdout, level=level, serialize=True, enqueue=True, backtrace=False, diagnose=False)


def _stream_audience(scope: Scope) -> int | None:
    state = getattr(scope.get("app"), "state", None)
    gateway = getattr(state, "comment_gateway", None)
    if gateway is None:
        return None
    return gateway.connected_clients()


def _route_template(scope: Scope) -> str:
    route = scope.get("route")
    return str(getattr(route, "path", None) or scope.get("path", ""))


class RequestLoggingMiddleware:
    """Log every HTTP request and every comment-stream session.

    HTTP requests are also timed into the Prometheus request metrics. Stream
    sessions log the channel and how many clients the gateway holds once the
    session ends, and refresh the ``ws_clients_gauge`` for that channel.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await self._stream_session(scope, receive, send)
        elif scope["type"] == "http":
            await self._http_request(scope, receive, send)
        else:
            await self.app(scope, receive, send)

    async def _stream_session(self, scope: Scope, receive: Receive, send: Send) -> None:
        channel = scope.get("path", "")
        log = logger.bind(session_id=uuid.uuid4().hex, channel=channel)
        opened = time.perf_counter()
        log.info("stream_session_opened")
        try:
            await self.app(scope, receive, send)
        except Exception:
            log.exception("stream_session_failed")
            raise
        finally:
            audience = _stream_audience(scope)
            if audience is not None:
                set_ws_client_gauge(channel, audience)
            log.bind(
                duration_ms=round((time.perf_counter() - opened) * 1000, 2),
                connected_clients=audience,
            ).info("stream_session_closed")

    async def _http_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        state: MutableMapping[str, Any] = scope.setdefault("state", {})
        state["request_id"] = request_id = uuid.uuid4().hex
        method = scope.get("method", "UNKNOWN")
        log = logger.bind(request_id=request_id, method=method, path=scope.get("path", ""))
        client = scope.get("client")
        if client:
            state["ip"] = client[0]
            log = log.bind(ip=client[0])
        started = time.perf_counter()

        async def send_and_record(message: Message) -> None:
            if message["type"] == "http.response.start":
                status_code = int(message.get("status", 500))
                elapsed = time.perf_counter() - started
                observe_request(_route_template(scope), method, status_code, elapsed)
                fields: dict[str, Any] = {"status_code": status_code, "latency_ms": round(elapsed * 1000, 2)}
                if "user_id" in state:
                    fields["user_id"] = state["user_id"]
                if status_code >= 500 and "error_detail" in state:
                    fields["error"] = state["error_detail"]
                log.bind(**fields).info("request_completed")
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        except Exception as exc:
            log.bind(
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
                error=exc.__class__.__name__,
            ).exception("request_failed")
            raise


def mask_email(email: str) -> str:
    """``maria@example.com`` becomes ``m***a@example.com``."""

    local, at, domain = email.partition("@")
    if not at:
        return email
    if len(local) <= 2:
        hidden = local[:1] + "*" * (len(local) - 1)
    else:
        hidden = local[0] + "*" * (len(local) - 2) + local[-1]
    return f"{hidden}@{domain}"


def record_validation_error(request: Request, error: str, details: Any | None = None) -> None:
    log = logger.bind(path=request.url.path, method=request.method, details=details)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        log = log.bind(request_id=request_id)
    log.warning(error)
