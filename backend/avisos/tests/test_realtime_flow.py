"""Stream clients wired to the real gateway, REST API and broadcaster in-process."""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from avisos.api.ws import CommentGateway
from avisos.client import ClientState, CommentsApi, CommentStreamClient
from avisos.main import app
from avisos.tests.utils import access_token, create_announcement, create_user

_EOF = None


class _ServerEnd:
    """The gateway side of an in-memory socket pair."""

    def __init__(self, to_client: asyncio.Queue, to_server: asyncio.Queue) -> None:
        self._to_client = to_client
        self._to_server = to_server

    async def accept(self) -> None:
        return None

    async def send_text(self, data: str) -> None:
        self._to_client.put_nowait(data)

    async def receive(self) -> dict[str, object]:
        item = await self._to_server.get()
        if item is _EOF:
            return {"type": "websocket.disconnect", "code": 1000}
        return {"type": "websocket.receive", "text": item}


class _ClientEnd:
    """The stream-client side; entering it starts ``gateway.serve`` for the pair."""

    def __init__(self, gateway: CommentGateway) -> None:
        self._gateway = gateway
        self._to_client: asyncio.Queue = asyncio.Queue()
        self._to_server: asyncio.Queue = asyncio.Queue()
        self._server_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "_ClientEnd":
        server_end = _ServerEnd(self._to_client, self._to_server)
        self._server_task = asyncio.create_task(self._gateway.serve(server_end))  # type: ignore[arg-type]
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._to_server.put_nowait(_EOF)
        if self._server_task is not None:
            await asyncio.gather(self._server_task, return_exceptions=True)
        return False

    def __aiter__(self) -> "_ClientEnd":
        return self

    async def __anext__(self) -> str:
        item = await self._to_client.get()
        if item is _EOF:
            raise StopAsyncIteration
        return item

    async def send(self, data: str) -> None:
        self._to_server.put_nowait(data)


def _connector(gateway: CommentGateway) -> Callable[[str], _ClientEnd]:
    return lambda url: _ClientEnd(gateway)


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture()
async def stream_clients() -> AsyncIterator[Callable[..., CommentStreamClient]]:
    created: list[tuple[CommentStreamClient, CommentsApi]] = []

    def _factory(token: str, *, connector: Callable[[str], object] | None = None) -> CommentStreamClient:
        api = CommentsApi("http://testserver", token, transport=ASGITransport(app=app))
        stream = CommentStreamClient(
            api,
            "ws://testserver/comments",
            connector=connector or _connector(app.state.comment_gateway),
            reconnect_delay=0.01,
        )
        created.append((stream, api))
        return stream

    yield _factory
    for stream, api in created:
        await stream.detach()
        await api.aclose()
    await app.state.comment_broadcaster.drain()


async def test_comment_reaches_clients_scoped_to_its_announcement(
    client: AsyncClient, session: AsyncSession, stream_clients: Callable[..., CommentStreamClient]
) -> None:
    reader = await create_user(session, name="Lector", email="reader@example.com")
    writer = await create_user(session, name="Escritor", email="writer@example.com")
    other = await create_user(session, name="Otro", email="other@example.com")
    await create_announcement(session, creator=writer, title="Aviso 42", announcement_id=42)
    await create_announcement(session, creator=writer, title="Aviso 99", announcement_id=99)

    client1 = stream_clients(access_token(reader))
    client2 = stream_clients(access_token(writer))
    client3 = stream_clients(access_token(other))
    notices: list[str] = []
    client1.on_notification(notices.append)
    assert await client1.attach(42)
    assert await client2.attach(42)
    assert await client3.attach(99)
    await _until(lambda: all(c.state is ClientState.CONNECTED for c in (client1, client2, client3)))

    created = await client2.send_comment("hello")
    await _until(lambda: len(client1.comments) == 1)
    await app.state.comment_broadcaster.drain()
    await asyncio.sleep(0.02)

    assert client1.comments[0].id == created.id
    assert client1.comments[0].body == "hello"
    assert client1.comments[0].announcement_id == 42
    assert client1.comments[0].author.name == "Escritor"
    assert notices == ["New comment received"]
    # The sender sees its comment exactly once despite the echo it sent.
    assert [comment.id for comment in client2.comments] == [created.id]
    assert client3.comments == []


async def test_offline_client_inserts_its_own_comment(
    client: AsyncClient, session: AsyncSession, stream_clients: Callable[..., CommentStreamClient]
) -> None:
    user = await create_user(session, name="Offline", email="offline@example.com")
    announcement = await create_announcement(session, creator=user)

    def _refuse(url: str) -> object:
        raise ConnectionRefusedError("server unreachable")

    offline = stream_clients(access_token(user), connector=_refuse)
    assert await offline.attach(announcement.id)
    await _until(lambda: offline.state is ClientState.DISCONNECTED)

    created = await offline.send_comment("offline note")

    assert offline.comments[0].id == created.id
    assert offline.comments[0].body == "offline note"
    listing = await client.get(
        f"/api/v1/comments/announcement/{announcement.id}",
        headers={"Authorization": f"Bearer {access_token(user)}"},
    )
    assert [item["body"] for item in listing.json()] == ["offline note"]


async def test_bulk_load_returns_existing_comments(
    client: AsyncClient, session: AsyncSession, stream_clients: Callable[..., CommentStreamClient]
) -> None:
    user = await create_user(session, name="Ana", email="ana@example.com")
    announcement = await create_announcement(session, creator=user)
    headers = {"Authorization": f"Bearer {access_token(user)}"}
    for body in ("primero", "segundo"):
        response = await client.post(
            "/api/v1/comments", json={"announcement_id": announcement.id, "body": body}, headers=headers
        )
        assert response.status_code == 201
    await app.state.comment_broadcaster.drain()

    stream = stream_clients(access_token(user))
    assert await stream.attach(announcement.id)

    assert [comment.body for comment in stream.comments] == ["segundo", "primero"]
