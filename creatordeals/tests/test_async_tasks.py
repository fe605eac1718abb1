"""Tests for background task helpers (core/async_tasks.py)."""

import asyncio

from creatordeals.core.async_tasks import drain_background_tasks, fire_and_forget, pending_task_count, run_later


async def test_fire_and_forget_runs_and_logs_failures(caplog):
    done = []

    async def ok():
        done.append(True)

    async def boom():
        raise RuntimeError("broken")

    fire_and_forget(ok(), task_name="ok")
    fire_and_forget(boom(), task_name="boom")
    await drain_background_tasks(timeout_seconds=1.0)

    assert done == [True]
    assert "Background task failed: boom" in caplog.text
    assert pending_task_count() == 0


def test_fire_and_forget_without_loop_drops_work():
    async def never():
        raise AssertionError("should not run")

    assert fire_and_forget(never()) is None


async def test_run_later_waits_for_delay():
    done = []

    async def job():
        done.append(True)

    task = run_later(0.01, job(), task_name="later")
    assert done == []
    await task
    assert done == [True]


async def test_drain_cancels_slow_tasks():
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(60)

    task = fire_and_forget(slow(), task_name="slow")
    await started.wait()
    await drain_background_tasks(timeout_seconds=0.01)
    assert task.cancelled()
