"""Prometheus metrics collectors and helpers."""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

REGISTRY: CollectorRegistry
HTTP_REQUESTS_TOTAL: Counter
HTTP_REQUEST_DURATION: Histogram
AUTH_LOGINS_TOTAL: Counter
WS_CLIENTS_GAUGE: Gauge
COMMENT_BROADCASTS_TOTAL: Counter
EVENT_LISTENER_ERRORS_TOTAL: Counter


def _initialise_registry() -> None:
    global REGISTRY, HTTP_REQUESTS_TOTAL, HTTP_REQUEST_DURATION
    global AUTH_LOGINS_TOTAL, WS_CLIENTS_GAUGE, COMMENT_BROADCASTS_TOTAL, EVENT_LISTENER_ERRORS_TOTAL

    registry = CollectorRegistry(auto_describe=True)
    ProcessCollector(registry=registry)  # expose process CPU/memory stats
    PlatformCollector(registry=registry)  # platform/runtime metadata

    HTTP_REQUESTS_TOTAL = Counter(
        "http_requests_total",
        "Count of HTTP requests received",
        labelnames=("path", "method", "status"),
        registry=registry,
    )

    HTTP_REQUEST_DURATION = Histogram(
        "http_request_duration_seconds",
        "Histogram of request latency",
        labelnames=("path", "method"),
        registry=registry,
    )

    AUTH_LOGINS_TOTAL = Counter(
        "auth_logins_total",
        "Authentication results",
        labelnames=("outcome",),
        registry=registry,
    )

    WS_CLIENTS_GAUGE = Gauge(
        "ws_clients_gauge",
        "Active WebSocket clients by channel",
        labelnames=("channel",),
        registry=registry,
    )

    COMMENT_BROADCASTS_TOTAL = Counter(
        "comment_broadcasts_total",
        "Outcome of comment fan-out attempts",
        labelnames=("outcome",),
        registry=registry,
    )

    EVENT_LISTENER_ERRORS_TOTAL = Counter(
        "event_listener_errors_total",
        "Event bus listeners that raised during dispatch",
        labelnames=("topic",),
        registry=registry,
    )

    REGISTRY = registry


_initialise_registry()


def render_metrics() -> bytes:
    """Return the current metrics snapshot in Prometheus format."""

    return generate_latest(REGISTRY)


def observe_request(path: str, method: str, status: int, latency_seconds: float) -> None:
    """Record HTTP request metrics in a thread-safe manner."""

    HTTP_REQUESTS_TOTAL.labels(path=path, method=method, status=str(status)).inc()
    HTTP_REQUEST_DURATION.labels(path=path, method=method).observe(latency_seconds)


def record_auth_login(outcome: str) -> None:
    """Increment authentication outcome counter."""

    AUTH_LOGINS_TOTAL.labels(outcome=outcome).inc()


def set_ws_client_gauge(channel: str, value: int) -> None:
    """Explicitly set the number of active websocket clients for a channel."""

    WS_CLIENTS_GAUGE.labels(channel=channel).set(value)


def record_comment_broadcast(outcome: str) -> None:
    COMMENT_BROADCASTS_TOTAL.labels(outcome=outcome).inc()


def record_listener_error(topic: str) -> None:
    EVENT_LISTENER_ERRORS_TOTAL.labels(topic=topic).inc()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "REGISTRY",
    "render_metrics",
    "observe_request",
    "record_auth_login",
    "set_ws_client_gauge",
    "record_comment_broadcast",
    "record_listener_error",
]
