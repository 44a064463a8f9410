from __future__ import annotations

from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.core import metrics as metrics_module
from avisos.core.database import get_session_factory
from avisos.models.user import UserRole
from avisos.schemas.realtime import NewCommentEvent
from avisos.services.broadcaster import CommentBroadcaster
from avisos.services.events import COMMENT_CREATED
from avisos.services.pubsub import EventBus
from avisos.tests.utils import create_announcement, create_comment, create_user


class _RecordingGateway:
    def __init__(self, reach: int = 2) -> None:
        self.events: list[NewCommentEvent] = []
        self._reach = reach

    def broadcast(self, event: NewCommentEvent) -> int:
        self.events.append(event)
        return self._reach


def _outcome(name: str) -> float:
    value = metrics_module.REGISTRY.get_sample_value("comment_broadcasts_total", {"outcome": name})
    return value or 0.0


async def test_published_comment_is_pushed_with_context(session: AsyncSession) -> None:
    author = await create_user(session, name="Ana Lima", email="ana@example.com", role=UserRole.EDITOR)
    announcement = await create_announcement(session, creator=author, title="Reunión semanal")
    comment = await create_comment(session, announcement=announcement, author=author, body="Hola")

    bus = EventBus()
    gateway = _RecordingGateway()
    broadcaster = CommentBroadcaster(bus, gateway, get_session_factory())  # type: ignore[arg-type]
    broadcaster.start()
    before = _outcome("delivered")

    assert bus.publish(COMMENT_CREATED, comment.id) == 1
    await broadcaster.drain()

    assert len(gateway.events) == 1
    pushed = gateway.events[0].comment
    assert pushed.id == comment.id
    assert pushed.body == "Hola"
    assert pushed.author.name == "Ana Lima"
    assert pushed.announcement.title == "Reunión semanal"
    assert _outcome("delivered") == before + 1
    assert broadcaster.pending == 0


async def test_missing_comment_is_dropped() -> None:
    bus = EventBus()
    gateway = _RecordingGateway()
    broadcaster = CommentBroadcaster(bus, gateway, get_session_factory())  # type: ignore[arg-type]
    broadcaster.start()
    before = _outcome("not_found")

    bus.publish(COMMENT_CREATED, 987654)
    await broadcaster.drain()

    assert gateway.events == []
    assert _outcome("not_found") == before + 1


async def test_lookup_failure_is_contained() -> None:
    class _BrokenSession:
        async def __aenter__(self) -> Any:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        async def __aexit__(self, *exc: object) -> bool:
            return False

    bus = EventBus()
    gateway = _RecordingGateway()
    broadcaster = CommentBroadcaster(bus, gateway, lambda: _BrokenSession())  # type: ignore[arg-type]
    broadcaster.start()
    before = _outcome("failed")

    assert await broadcaster.broadcast_comment(1) == 0
    assert gateway.events == []
    assert _outcome("failed") == before + 1


async def test_stop_unsubscribes_from_the_bus() -> None:
    bus = EventBus()
    broadcaster = CommentBroadcaster(bus, _RecordingGateway(), get_session_factory())  # type: ignore[arg-type]
    broadcaster.start()
    broadcaster.start()
    assert bus.listener_count(COMMENT_CREATED) == 1

    broadcaster.stop()
    assert bus.listener_count(COMMENT_CREATED) == 0
    assert bus.publish(COMMENT_CREATED, 1) == 0


async def test_unexpected_send_error_is_counted_as_failed(session: AsyncSession) -> None:
    class _ExplodingGateway:
        def broadcast(self, event: NewCommentEvent) -> int:
            raise RuntimeError("registry corrupted")

    author = await create_user(session, name="Ana", email="ana@example.com")
    announcement = await create_announcement(session, creator=author)
    comment = await create_comment(session, announcement=announcement, author=author)

    bus = EventBus()
    broadcaster = CommentBroadcaster(bus, _ExplodingGateway(), get_session_factory())  # type: ignore[arg-type]
    broadcaster.start()
    before = _outcome("failed")

    assert bus.publish(COMMENT_CREATED, comment.id) == 1
    await broadcaster.drain()

    assert _outcome("failed") == before + 1
    assert broadcaster.pending == 0
