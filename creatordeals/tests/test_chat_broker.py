"""Tests for the in-process SSE fan-out (core/chat_broker.py)."""

import json

from creatordeals.core.chat_broker import HEARTBEAT_FRAME, ChatBroker, format_sse


class _Disconnect:
    """Stand-in for ``Request.is_disconnected`` that flips after ``after`` polls."""

    def __init__(self, after: int):
        self.after = after
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.calls > self.after


def _data(frame: str) -> dict:
    line = next(l for l in frame.splitlines() if l.startswith("data: "))
    return json.loads(line[len("data: "):])


def test_format_sse():
    assert format_sse({"a": 1}) == 'data: {"a": 1}\n\n'
    assert format_sse({"a": 1}, event="connected") == 'event: connected\ndata: {"a": 1}\n\n'


def test_subscribe_and_unsubscribe():
    broker = ChatBroker()
    q1 = broker.subscribe("room-1")
    q2 = broker.subscribe("room-1")
    broker.subscribe("room-2")
    assert broker.subscriber_count("room-1") == 2
    assert broker.subscriber_count() == 3

    broker.unsubscribe("room-1", q1)
    broker.unsubscribe("room-1", q2)
    assert broker.subscriber_count("room-1") == 0
    assert not broker.is_subscribed("room-1", q1)

    # Unknown rooms and queues are ignored
    broker.unsubscribe("missing", q1)


def test_subscribe_refuses_beyond_capacity(monkeypatch):
    broker = ChatBroker()
    monkeypatch.setattr(ChatBroker, "MAX_SUBSCRIBERS", 2)
    assert broker.subscribe("r") is not None
    assert broker.subscribe("r") is not None
    assert broker.subscribe("r") is None


async def test_publish_reaches_only_room_subscribers():
    broker = ChatBroker()
    inside = broker.subscribe("room-1")
    outside = broker.subscribe("room-2")

    delivered = await broker.publish("room-1", {"type": "message", "text": "hi"})
    assert delivered == 1
    assert _data(inside.get_nowait()) == {"type": "message", "text": "hi"}
    assert outside.empty()
    assert await broker.publish("nobody-here", {"type": "message"}) == 0


async def test_publish_drops_full_subscriber():
    broker = ChatBroker(queue_size=1)
    slow = broker.subscribe("room")
    fast = broker.subscribe("room")

    await broker.publish("room", {"n": 1})
    fast.get_nowait()
    delivered = await broker.publish("room", {"n": 2})

    assert delivered == 1
    assert not broker.is_subscribed("room", slow)
    assert broker.is_subscribed("room", fast)


async def test_stream_yields_connected_then_events():
    broker = ChatBroker()
    queue = broker.subscribe("room")
    await broker.publish("room", {"type": "message", "id": "m1"})

    frames = []
    async for frame in broker.stream("room", queue, is_disconnected=_Disconnect(after=1), heartbeat_seconds=5):
        frames.append(frame)

    assert frames[0].startswith("event: connected\n")
    assert _data(frames[0]) == {"status": "ok", "chat_id": "room"}
    assert _data(frames[1]) == {"type": "message", "id": "m1"}
    assert len(frames) == 2
    # The subscriber is released once the client goes away
    assert broker.subscriber_count("room") == 0


async def test_stream_sends_heartbeats_when_idle():
    broker = ChatBroker()
    queue = broker.subscribe("room")
    frames = [
        frame
        async for frame in broker.stream("room", queue, is_disconnected=_Disconnect(after=2), heartbeat_seconds=0.01)
    ]
    assert frames[1:] == [HEARTBEAT_FRAME, HEARTBEAT_FRAME]


async def test_stream_ends_after_subscriber_is_dropped():
    broker = ChatBroker()
    queue = broker.subscribe("room")
    broker.unsubscribe("room", queue)
    frames = [
        frame
        async for frame in broker.stream("room", queue, is_disconnected=_Disconnect(after=10), heartbeat_seconds=5)
    ]
    assert len(frames) == 1
