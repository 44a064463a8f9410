"""FastAPI application entrypoint."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

from avisos.api.v1 import api_router
from avisos.api.ws import CommentGateway, register_websocket_routes
from avisos.core.config import get_settings
from avisos.core.database import create_schema, get_session_factory
from avisos.core.health import build_health_payload
from avisos.core.logging import RequestLoggingMiddleware, configure_logging, record_validation_error
from avisos.core.metrics import CONTENT_TYPE_LATEST, render_metrics
from avisos.services.broadcaster import CommentBroadcaster
from avisos.services.pubsub import EventBus
from avisos.services.seed import seed_admin

configure_logging()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await create_schema()
    async with get_session_factory()() as session:
        await seed_admin(session)
    broadcaster: CommentBroadcaster = app.state.comment_broadcaster
    broadcaster.start()
    logger.bind(env=settings.env).info("application_started")
    try:
        yield
    finally:
        broadcaster.stop()
        await broadcaster.drain()
        logger.info("application_stopped")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = detail
    else:
        content = {"error": {"code": "http_error", "message": str(detail)}}
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        if isinstance(exc.detail, str):
            request.state.error_detail = exc.detail
        elif isinstance(exc.detail, dict):
            request.state.error_detail = exc.detail.get("code", "http_error")
    headers = exc.headers if exc.headers else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    record_validation_error(request, "validation_error", errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed.",
                "details": errors,
            }
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request.state.error_detail = exc.__class__.__name__
    logger.exception("unhandled_application_error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "server_error", "message": "Internal server error."}},
    )


def create_app(*, bus: EventBus | None = None, gateway: CommentGateway | None = None) -> FastAPI:
    """Build the application with its own event bus, gateway and broadcaster."""

    app = FastAPI(title="Avisos Backend", version="1.0.0", lifespan=lifespan)
    app.state.event_bus = bus or EventBus()
    app.state.comment_gateway = gateway or CommentGateway(max_queue_size=settings.ws_queue_size)
    app.state.comment_broadcaster = CommentBroadcaster(
        app.state.event_bus,
        app.state.comment_gateway,
        get_session_factory(),
    )
    app.state.comment_broadcaster.start()

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router)
    register_websocket_routes(app)

    @app.get("/health", tags=["health"], response_model=dict)
    async def health(request: Request) -> dict[str, object]:
        """Return infrastructure-focused health telemetry."""

        return await build_health_payload(request.app)

    if settings.metrics_enabled:

        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            """Expose Prometheus-formatted metrics."""

            return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""

    import uvicorn

    logger.bind(host=settings.api_host, port=settings.api_port).info("api_server_starting")
    uvicorn.run("avisos.main:app", host=settings.api_host, port=settings.api_port, reload=settings.api_reload)
