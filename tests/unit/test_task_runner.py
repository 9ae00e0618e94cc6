from __future__ import annotations

import asyncio

import pytest

from repofuse.pipeline.runner import TaskRunner


def test_send_task_unknown_returns_false() -> None:
    runner = TaskRunner(max_concurrent=1)
    assert runner.send_task("unknown.task", kwargs={}) is False


def test_send_task_without_running_loop_returns_false() -> None:
    runner = TaskRunner(max_concurrent=1)
    runner.register("demo.task", asyncio.sleep)
    assert runner.send_task("demo.task", kwargs={}) is False


@pytest.mark.asyncio
async def test_send_task_dispatches_registered_task() -> None:
    runner = TaskRunner(max_concurrent=1)
    done = asyncio.Event()

    async def _task(value: str) -> None:
        if value == "ok":
            done.set()

    runner.register("demo.task", _task)
    assert runner.send_task("demo.task", kwargs={"value": "ok"}) is True
    await asyncio.wait_for(done.wait(), timeout=1.0)
    await runner.shutdown(timeout_s=1)


@pytest.mark.asyncio
async def test_shutdown_drains_inflight_tasks() -> None:
    runner = TaskRunner(max_concurrent=1)
    completed = asyncio.Event()

    async def _task() -> None:
        await asyncio.sleep(0.05)
        completed.set()

    runner.register("demo.async", _task)
    assert runner.send_task("demo.async", kwargs={}) is True
    await runner.shutdown(timeout_s=1)
    assert completed.is_set()
    assert runner.send_task("demo.async", kwargs={}) is False


@pytest.mark.asyncio
async def test_task_failure_is_logged_not_raised(caplog) -> None:
    runner = TaskRunner(max_concurrent=1)

    async def _task() -> None:
        raise ValueError("broken")

    runner.register("demo.fail", _task)
    assert runner.send_task("demo.fail", kwargs={}) is True
    await runner.shutdown(timeout_s=1)
    assert runner.in_flight == 0
    assert "Task failed: demo.fail" in caplog.text


@pytest.mark.asyncio
async def test_concurrency_is_bounded() -> None:
    runner = TaskRunner(max_concurrent=2)
    active = 0
    peak = 0

    async def _task() -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.02)
        active -= 1

    runner.register("demo.bounded", _task)
    for _ in range(6):
        assert runner.send_task("demo.bounded", kwargs={}) is True
    await runner.shutdown(timeout_s=2)
    assert runner.max_concurrent == 2
    assert peak == 2
