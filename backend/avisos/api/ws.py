"""WebSocket gateway streaming comment events to connected clients."""
from __future__ import annotations

import asyncio
import enum
import uuid

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from loguru import logger

from avisos.core.metrics import set_ws_client_gauge
from avisos.schemas.realtime import NewCommentEvent, WelcomeEvent, parse_broadcast_event
from avisos.services.events import COMMENTS_CHANNEL_PATH


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ClientConnection:
    """One registered socket with its outbound frame queue."""

    def __init__(self, websocket: WebSocket, *, max_queue_size: int = 32) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        self.queue: asyncio.Queue[str] = asyncio.Queue(max_queue_size)

    def enqueue(self, payload: str) -> None:
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            # If we cannot queue even after dropping the oldest frame the
            # connection is stuck; the caller treats this as a send failure.
            self.queue.put_nowait(payload)


class CommentGateway:
    """Track open comment-stream connections and fan frames out to them."""

    def __init__(self, *, max_queue_size: int = 32, channel: str = COMMENTS_CHANNEL_PATH) -> None:
        self._connections: set[ClientConnection] = set()
        self._max_queue_size = max_queue_size
        self._channel = channel

    def connected_clients(self) -> int:
        return sum(1 for connection in self._connections if connection.state is ConnectionState.OPEN)

    def register(self, websocket: WebSocket) -> ClientConnection:
        connection = ClientConnection(websocket, max_queue_size=self._max_queue_size)
        self._connections.add(connection)
        return connection

    def unregister(self, connection: ClientConnection) -> None:
        connection.state = ConnectionState.CLOSED
        self._connections.discard(connection)
        set_ws_client_gauge(self._channel, self.connected_clients())

    def broadcast(self, event: NewCommentEvent | WelcomeEvent) -> int:
        """Queue ``event`` for every open connection and return how many were reached."""

        payload = event.model_dump_json()
        delivered = 0
        for connection in list(self._connections):
            if connection.state is not ConnectionState.OPEN:
                continue
            try:
                connection.enqueue(payload)
            except Exception:
                logger.bind(connection_id=connection.id).exception("websocket_enqueue_failed")
                continue
            delivered += 1
        return delivered

    async def serve(self, websocket: WebSocket) -> None:
        """Run one connection from handshake until it closes."""

        connection = self.register(websocket)
        log = logger.bind(connection_id=connection.id)
        try:
            await websocket.accept()
            connection.state = ConnectionState.OPEN
            set_ws_client_gauge(self._channel, self.connected_clients())
            await websocket.send_text(WelcomeEvent().model_dump_json())

            tasks = {
                asyncio.create_task(self._pump(connection)),
                asyncio.create_task(self._listen(connection)),
            }
            try:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    log.bind(error=exc.__class__.__name__).warning("websocket_connection_dropped")
        except WebSocketDisconnect:
            log.debug("websocket_disconnected_during_handshake")
        finally:
            self.unregister(connection)

    async def _pump(self, connection: ClientConnection) -> None:
        while True:
            payload = await connection.queue.get()
            await connection.websocket.send_text(payload)

    async def _listen(self, connection: ClientConnection) -> None:
        while True:
            message = await connection.websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text") or message.get("bytes")
            if raw is None:
                continue
            event = parse_broadcast_event(raw)
            # Echoes of a client's own comment are informational; the
            # authoritative broadcast already went out from the write path.
            logger.bind(
                connection_id=connection.id,
                message_type=event.type if event is not None else "unknown",
            ).debug("websocket_client_message_ignored")


def get_gateway(app: FastAPI) -> CommentGateway:
    return app.state.comment_gateway


def register_websocket_routes(app: FastAPI) -> None:
    """Attach the comments stream endpoint to the FastAPI application."""

    @app.websocket(COMMENTS_CHANNEL_PATH)
    async def comments_socket(websocket: WebSocket) -> None:
        await get_gateway(websocket.app).serve(websocket)


__all__ = [
    "ClientConnection",
    "CommentGateway",
    "ConnectionState",
    "get_gateway",
    "register_websocket_routes",
]
