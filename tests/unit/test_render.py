"""Tests for the serialized render queue."""

import asyncio

import pytest

from layerdeck.events import Emitter
from layerdeck.render import RenderQueue

pytestmark = pytest.mark.asyncio


class Owner(Emitter):
    EVENTS = frozenset({"error"})


def job(log, name, delay=0):
    async def run():
        await asyncio.sleep(delay)
        log.append(name)
    return run


async def test_jobs_run_in_order():
    log = []
    queue = RenderQueue()

    queue.push(job(log, "slow", 0.03))
    queue.push(job(log, "fast"))
    queue.push(job(log, "last"))
    await queue.join()

    assert log == ["slow", "fast", "last"]
    queue.close()


async def test_failure_is_reported_on_owner_and_queue_continues():
    log = []
    errors = []
    owner = Owner()
    owner.on("error", errors.append)

    async def broken():
        raise RuntimeError("write failed")

    queue = RenderQueue()
    queue.push(broken, owner=owner)
    queue.push(job(log, "after"))
    await queue.join()

    assert [str(err) for err in errors] == ["write failed"]
    assert log == ["after"]
    queue.close()


async def test_failure_without_owner_is_logged(caplog):
    async def broken():
        raise RuntimeError("no owner")

    queue = RenderQueue()
    queue.push(broken)
    await queue.join()

    assert "no owner" in caplog.text
    queue.close()


async def test_close_drops_pending_jobs():
    log = []
    queue = RenderQueue()

    queue.push(job(log, "first", 0.05))
    queue.push(job(log, "second"))
    await asyncio.sleep(0)
    queue.close()
    queue.push(job(log, "ignored"))
    assert len(queue) == 0

    # The running job is left to finish
    await queue.wait_closed()
    assert log == ["first"]
    assert queue.closed

    await asyncio.sleep(0.05)
    assert log == ["first"]


async def test_close_idle_queue():
    log = []
    queue = RenderQueue()
    queue.push(job(log, "only"))
    await queue.join()

    queue.close()
    await asyncio.wait_for(queue.wait_closed(), 1)

    assert log == ["only"]


async def test_wait_closed_without_worker():
    queue = RenderQueue()
    queue.close()
    await queue.wait_closed()
    assert queue.closed
