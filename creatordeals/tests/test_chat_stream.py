"""Route-level tests for the chat SSE stream (GET /chats/{chat_id}/stream).

httpx's ASGI transport buffers whole responses, so the stream is driven by
calling the ASGI app directly: ``receive`` hands over an empty request and
then blocks until the test signals a client disconnect.
"""

import asyncio
import json

from creatordeals import database
from creatordeals.config import settings
from creatordeals.database import get_db
from creatordeals.main import app
from creatordeals.tests.conftest import TestSession

_BASE = "/api/v1/chats"


class _StreamClient:
    """Minimal ASGI client that keeps one GET response open."""

    def __init__(self, path: str, token: str):
        self.path = path
        self.token = token
        self.sent: asyncio.Queue = asyncio.Queue()
        self.disconnected = asyncio.Event()
        self._request_sent = False
        self.task: asyncio.Task | None = None

    async def _receive(self) -> dict:
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self.disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: dict) -> None:
        await self.sent.put(message)

    def open(self) -> None:
        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.3"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": self.path,
            "raw_path": self.path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"test"),
                (b"accept", b"text/event-stream"),
                (b"authorization", f"Bearer {self.token}".encode()),
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }
        self.task = asyncio.create_task(app(scope, self._receive, self._send))

    async def next_message(self, timeout: float = 5.0) -> dict:
        return await asyncio.wait_for(self.sent.get(), timeout)

    async def next_data_frame(self, timeout: float = 5.0) -> str:
        """Skip heartbeats and return the next body chunk carrying data."""
        while True:
            message = await self.next_message(timeout)
            chunk = message.get("body", b"").decode()
            if "data: " in chunk:
                return chunk

    async def close(self) -> None:
        self.disconnected.set()
        await asyncio.wait_for(self.task, 5.0)


async def _pair(make_user, make_chat):
    marketer, m_token = await make_user("Marketer", name="Mia Brand")
    creator, c_token = await make_user("Creator", name="Cleo Makes")
    room = await make_chat(marketer.id, creator.id)
    return room, m_token, c_token


def _data(chunk: str) -> dict:
    line = next(l for l in chunk.splitlines() if l.startswith("data: "))
    return json.loads(line[len("data: "):])


async def test_stream_delivers_messages_sent_over_http(client, make_user, make_chat, monkeypatch):
    monkeypatch.setattr(settings, "sse_heartbeat_seconds", 0.05)
    room, m_token, c_token = await _pair(make_user, make_chat)

    stream = _StreamClient(f"{_BASE}/{room.id}/stream", c_token)
    stream.open()
    try:
        start = await stream.next_message()
        assert start["type"] == "http.response.start"
        assert start["status"] == 200
        headers = {k.decode().lower(): v.decode() for k, v in start["headers"]}
        assert headers["content-type"].startswith("text/event-stream")
        assert headers["cache-control"] == "no-cache"
        assert headers["connection"] == "keep-alive"
        assert headers["x-accel-buffering"] == "no"

        connected = await stream.next_data_frame()
        assert connected.startswith("event: connected\n")
        assert _data(connected) == {"status": "ok", "chat_id": room.id}

        sent = await client.post(f"{_BASE}/{room.id}/messages", data={"text": "Live hello"}, headers={"Authorization": f"Bearer {m_token}"})
        assert sent.status_code == 201

        event = _data(await stream.next_data_frame())
        assert event["type"] == "message"
        assert event["message"]["text"] == "Live hello"
        assert event["message"]["id"] == sent.json()["message"]["id"]
    finally:
        await stream.close()


async def test_open_stream_holds_no_database_session(client, make_user, make_chat, monkeypatch):
    monkeypatch.setattr(settings, "sse_heartbeat_seconds", 0.05)
    room, _, c_token = await _pair(make_user, make_chat)

    opened = []

    def _tracked_session():
        session = TestSession()
        opened.append(session)
        return session

    async def _tracked_get_db():
        async with _tracked_session() as session:
            yield session

    monkeypatch.setattr(database, "async_session", _tracked_session)
    app.dependency_overrides[get_db] = _tracked_get_db

    stream = _StreamClient(f"{_BASE}/{room.id}/stream", c_token)
    stream.open()
    try:
        assert (await stream.next_message())["status"] == 200
        assert "event: connected" in await stream.next_data_frame()
        assert opened
        assert not any(session.in_transaction() for session in opened)
    finally:
        await stream.close()
