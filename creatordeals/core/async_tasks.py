"""Best-effort background work: SSE fan-out, SMS delivery, delayed notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)
_PENDING_TASKS: set[asyncio.Task[Any]] = set()


def fire_and_forget(
    coro: Coroutine[Any, Any, Any], *, task_name: str | None = None
) -> asyncio.Task[Any] | None:
    """Schedule a coroutine on the running loop and log unexpected failures."""
    try:
        task = asyncio.create_task(coro, name=task_name)
    except RuntimeError:
        # No running loop (e.g. during shutdown); drop the work.
        coro.close()
        return None
    _PENDING_TASKS.add(task)

    def _on_done(done_task: asyncio.Task[Any]) -> None:
        _PENDING_TASKS.discard(done_task)
        try:
            done_task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Background task failed: %s", task_name or "unnamed task")

    task.add_done_callback(_on_done)
    return task


def run_later(
    delay_seconds: float, coro: Coroutine[Any, Any, Any], *, task_name: str | None = None
) -> asyncio.Task[Any] | None:
    """Like fire_and_forget, but start ``coro`` after ``delay_seconds``."""

    async def _delayed() -> Any:
        try:
            await asyncio.sleep(max(0.0, delay_seconds))
        except asyncio.CancelledError:
            coro.close()
            raise
        return await coro

    task = fire_and_forget(_delayed(), task_name=task_name)
    if task is None:
        coro.close()
    return task


def pending_task_count() -> int:
    return sum(1 for task in _PENDING_TASKS if not task.done())


async def drain_background_tasks(timeout_seconds: float = 1.0) -> None:
    """Wait for in-flight background tasks, cancelling whatever is still running.

    Called on shutdown and by tests so the event loop never closes under
    pending work.
    """
    pending = {task for task in _PENDING_TASKS if not task.done()}
    if not pending:
        return

    _, still_pending = await asyncio.wait(pending, timeout=timeout_seconds)
    for task in still_pending:
        task.cancel()

    if still_pending:
        await asyncio.gather(*still_pending, return_exceptions=True)
