"""Connection manager keeping one announcement's comments in sync with the stream."""
from __future__ import annotations

import asyncio
import enum
from typing import Any, Callable

import httpx
import websockets
from loguru import logger

from avisos.client.api import CommentsApi
from avisos.schemas.comment import CommentOut
from avisos.schemas.realtime import NewCommentEvent, parse_broadcast_event

RECONNECT_DELAY_SECONDS = 3.0
NEW_COMMENT_NOTIFICATION = "New comment received"

StatusCallback = Callable[[str], None]
NotificationCallback = Callable[[str], None]


class ClientState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DESTROYED = "destroyed"


class CommentStreamClient:
    """Maintain a newest-first comment list for one announcement.

    The client opens the ``/comments`` stream, loads the existing comments over
    REST and prepends every pushed ``new_comment`` that belongs to the attached
    announcement. A closed transport is retried after a fixed delay for as long
    as the client stays attached; ``detach()`` is the only way to stop it.
    Comments created while disconnected are not fetched again on reconnect.
    """

    def __init__(
        self,
        api: CommentsApi,
        url: str,
        *,
        connector: Callable[..., Any] | None = None,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ) -> None:
        self._api = api
        self._url = url
        self._connector = connector or websockets.connect
        self._reconnect_delay = max(0.0, float(reconnect_delay))
        self.state = ClientState.DISCONNECTED
        self.comments: list[CommentOut] = []
        self.connect_attempts = 0
        self._announcement_id: int | None = None
        self._alive = False
        self._socket: Any = None
        self._session_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._status_observers: list[StatusCallback] = []
        self._notification_observers: list[NotificationCallback] = []

    @property
    def announcement_id(self) -> int | None:
        return self._announcement_id

    @property
    def status(self) -> str:
        if self.state is ClientState.CONNECTED:
            return "open"
        if self.state is ClientState.CONNECTING:
            return "connecting"
        return "closed"

    async def attach(self, announcement_id: int | None) -> bool:
        """Start streaming comments for ``announcement_id``.

        Returns ``False`` without opening a connection when no announcement is
        given.
        """

        if announcement_id is None:
            return False
        if self.state is ClientState.DESTROYED:
            raise RuntimeError("client has been detached")
        if self._alive:
            raise RuntimeError("client is already attached")

        self._announcement_id = announcement_id
        self._alive = True
        self._connect()
        await self._load_initial(announcement_id)
        return True

    async def detach(self) -> None:
        """Stop reconnecting, close the transport and forget every comment."""

        self._alive = False
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task, self._session_task = self._session_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._socket = None
        self._status_observers.clear()
        self._notification_observers.clear()
        self.comments = []
        self._announcement_id = None
        self.state = ClientState.DESTROYED

    def on_status(self, callback: StatusCallback) -> Callable[[], None]:
        """Register ``callback`` for status changes and report the current one."""

        self._status_observers.append(callback)
        callback(self.status)
        return lambda: self._remove(self._status_observers, callback)

    def on_notification(self, callback: NotificationCallback) -> Callable[[], None]:
        self._notification_observers.append(callback)
        return lambda: self._remove(self._notification_observers, callback)

    async def send_comment(self, text: str) -> CommentOut:
        """Create a comment over REST and surface it in the local list.

        REST failures propagate. While connected the created comment is echoed
        on the stream and arrives back through the server broadcast; otherwise
        it is inserted locally.
        """

        if not self._alive or self._announcement_id is None:
            raise RuntimeError("client is not attached to an announcement")

        announcement_id = self._announcement_id
        created = await self._api.create_comment(announcement_id, text)
        if not self._alive or self._announcement_id != announcement_id:
            return created

        socket = self._socket
        if self.state is ClientState.CONNECTED and socket is not None:
            try:
                await socket.send(NewCommentEvent(comment=created).model_dump_json())
                return created
            except Exception as exc:  # noqa: BLE001
                logger.bind(comment_id=created.id, error=exc.__class__.__name__).warning(
                    "comment_stream_echo_failed"
                )
        self._insert(created)
        return created

    async def _load_initial(self, announcement_id: int) -> None:
        try:
            loaded = await self._api.list_comments(announcement_id)
        except httpx.HTTPError as exc:
            logger.bind(announcement_id=announcement_id, error=exc.__class__.__name__).warning(
                "comment_stream_initial_load_failed"
            )
            return
        if not self._alive or self._announcement_id != announcement_id:
            return
        # Comments pushed while the request was in flight are newer than anything loaded.
        pushed = list(self.comments)
        seen = {comment.id for comment in pushed}
        self.comments = pushed + [comment for comment in loaded if comment.id not in seen]

    def _connect(self) -> None:
        self._reconnect_handle = None
        if not self._alive:
            return
        self.connect_attempts += 1
        self.state = ClientState.CONNECTING
        self._emit_status("connecting")
        self._session_task = asyncio.get_running_loop().create_task(self._run_session())

    async def _run_session(self) -> None:
        try:
            async with self._connector(self._url) as socket:
                if not self._alive:
                    return
                self._socket = socket
                self.state = ClientState.CONNECTED
                self._emit_status("open")
                async for raw in socket:
                    self._handle_message(raw)
        except Exception as exc:  # noqa: BLE001
            if self._alive:
                logger.bind(url=self._url, error=exc.__class__.__name__).warning("comment_stream_transport_error")
                self._emit_status("error")
        finally:
            self._socket = None
            self._on_closed()

    def _on_closed(self) -> None:
        if not self._alive:
            return
        self.state = ClientState.DISCONNECTED
        self._emit_status("closed")
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self._alive or self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._connect)
        logger.bind(url=self._url, delay_seconds=self._reconnect_delay).info("comment_stream_reconnect_scheduled")

    def _handle_message(self, raw: str | bytes) -> None:
        if not self._alive or self.state is not ClientState.CONNECTED:
            return
        event = parse_broadcast_event(raw)
        if not isinstance(event, NewCommentEvent):
            return
        if event.comment.announcement_id != self._announcement_id:
            return
        if self._insert(event.comment):
            self._emit_notification(NEW_COMMENT_NOTIFICATION)

    def _insert(self, comment: CommentOut) -> bool:
        if any(existing.id == comment.id for existing in self.comments):
            return False
        self.comments.insert(0, comment)
        return True

    def _emit_status(self, status: str) -> None:
        if not self._alive:
            return
        for callback in list(self._status_observers):
            try:
                callback(status)
            except Exception:  # noqa: BLE001
                logger.bind(status=status).exception("comment_stream_observer_failed")

    def _emit_notification(self, message: str) -> None:
        if not self._alive:
            return
        for callback in list(self._notification_observers):
            try:
                callback(message)
            except Exception:  # noqa: BLE001
                logger.exception("comment_stream_observer_failed")

    @staticmethod
    def _remove(observers: list[Callable[[str], None]], callback: Callable[[str], None]) -> None:
        if callback in observers:
            observers.remove(callback)


__all__ = ["ClientState", "CommentStreamClient", "NEW_COMMENT_NOTIFICATION", "RECONNECT_DELAY_SECONDS"]
