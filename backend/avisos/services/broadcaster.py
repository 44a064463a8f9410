"""Bridge ``comment:created`` bus events to the realtime gateway."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from avisos.core.metrics import record_comment_broadcast
from avisos.schemas.realtime import NewCommentEvent
from avisos.services.comments import load_comment_with_context, serialize_comment
from avisos.services.events import COMMENT_CREATED
from avisos.services.pubsub import EventBus, Subscription

if TYPE_CHECKING:
    from avisos.api.ws import CommentGateway


class CommentBroadcaster:
    """Re-fetch newly created comments and push them to every connected client.

    The bus only carries the comment id. Loading the enriched record at send
    time keeps the write path free of serialization concerns and makes the
    pushed payload reflect the current database state.
    """

    def __init__(
        self,
        bus: EventBus,
        gateway: "CommentGateway",
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._bus = bus
        self._gateway = gateway
        self._session_factory = session_factory
        self._subscription: Subscription | None = None
        self._tasks: set[asyncio.Task[int]] = set()

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._bus.subscribe(COMMENT_CREATED, self._on_comment_created)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_comment_created(self, payload: Any) -> None:
        comment_id = int(payload)
        task = asyncio.get_running_loop().create_task(self.broadcast_comment(comment_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[int]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            record_comment_broadcast("failed")
            logger.opt(exception=exc).error("comment_broadcast_failed")

    async def broadcast_comment(self, comment_id: int) -> int:
        """Send one comment to all open connections; return how many were reached."""

        log = logger.bind(comment_id=comment_id)
        try:
            async with self._session_factory() as session:
                comment = await load_comment_with_context(session, comment_id)
                event = NewCommentEvent(comment=serialize_comment(comment)) if comment is not None else None
        except SQLAlchemyError:
            record_comment_broadcast("failed")
            log.exception("comment_broadcast_lookup_failed")
            return 0

        if event is None:
            record_comment_broadcast("not_found")
            log.warning("comment_broadcast_skipped")
            return 0

        delivered = self._gateway.broadcast(event)
        record_comment_broadcast("delivered")
        log.bind(connections=delivered).debug("comment_broadcast_sent")
        return delivered

    async def drain(self) -> None:
        """Wait for in-flight broadcasts to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["CommentBroadcaster"]
