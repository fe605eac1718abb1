"""In-process fan-out of chat events to Server-Sent Event subscribers."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from creatordeals.config import settings

logger = logging.getLogger(__name__)


def format_sse(data: dict, event: str | None = None) -> str:
    """Render one SSE frame."""
    payload = json.dumps(data, default=str)
    if event:
        return f"event: {event}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


HEARTBEAT_FRAME = ": heartbeat\n\n"


class ChatBroker:
    """Per-chat subscriber registry. Each SSE connection owns one bounded queue."""

    MAX_SUBSCRIBERS = 2000

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._rooms: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, chat_id: str) -> asyncio.Queue | None:
        if self.subscriber_count() >= self.MAX_SUBSCRIBERS:
            return None
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._rooms.setdefault(chat_id, set()).add(queue)
        return queue

    def unsubscribe(self, chat_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._rooms.get(chat_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            self._rooms.pop(chat_id, None)

    def is_subscribed(self, chat_id: str, queue: asyncio.Queue) -> bool:
        return queue in self._rooms.get(chat_id, ())

    def subscriber_count(self, chat_id: str | None = None) -> int:
        if chat_id is not None:
            return len(self._rooms.get(chat_id, ()))
        return sum(len(subs) for subs in self._rooms.values())

    async def publish(self, chat_id: str, message: dict) -> int:
        """Queue ``message`` for every subscriber of ``chat_id``.

        Subscribers whose queue is full are dropped; their stream ends the
        next time its loop checks the subscription. Returns the number of
        subscribers reached.
        """
        frame = format_sse(message)
        delivered = 0
        dead: list[asyncio.Queue] = []
        for queue in list(self._rooms.get(chat_id, ())):
            try:
                queue.put_nowait(frame)
                delivered += 1
            except asyncio.QueueFull:
                dead.append(queue)
        for queue in dead:
            logger.warning("Dropping slow SSE subscriber on chat %s", chat_id)
            self.unsubscribe(chat_id, queue)
        return delivered

    async def stream(
        self,
        chat_id: str,
        queue: asyncio.Queue,
        *,
        is_disconnected: Callable[[], Awaitable[bool]],
        heartbeat_seconds: float | None = None,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for one subscriber until the client goes away."""
        interval = heartbeat_seconds if heartbeat_seconds is not None else settings.sse_heartbeat_seconds
        try:
            yield format_sse({"status": "ok", "chat_id": chat_id}, event="connected")
            while True:
                if await is_disconnected() or not self.is_subscribed(chat_id, queue):
                    break
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=interval)
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue
                yield frame
        finally:
            self.unsubscribe(chat_id, queue)

    def clear(self) -> None:
        self._rooms.clear()


chat_broker = ChatBroker(queue_size=settings.sse_queue_size)
