# tests/test_write_queue.py

from __future__ import annotations

import asyncio
import logging

import pytest

from petatas.storage.errors import (
    SUPERSEDED_MESSAGE,
    QuotaExceededError,
    RateLimitError,
    SupersededWriteError,
    TransientBackendError,
)
from petatas.storage.rate_limiter import WriteRateLimiter
from petatas.storage.write_queue import WriteQueue

from .conftest import THROTTLE_MS
from .fakes import FakeScheduler, RecordingBackend


@pytest.mark.asyncio
async def test_newer_write_supersedes_pending_one(queue, backend, scheduler) -> None:
    first = queue.enqueue("k", {"v": 1})
    second = queue.enqueue("k", {"v": 2})

    with pytest.raises(SupersededWriteError, match=SUPERSEDED_MESSAGE):
        await first

    await scheduler.advance(THROTTLE_MS)
    await second

    assert backend.set_calls == [{"k": {"v": 2}}]


@pytest.mark.asyncio
async def test_single_timer_batches_keys_enqueued_within_window(queue, backend, scheduler) -> None:
    a = queue.enqueue("a", 1)
    await scheduler.advance(10)
    b = queue.enqueue("b", 2)

    assert len(scheduler.armed) == 1

    await scheduler.advance(10)
    await asyncio.gather(a, b)

    assert backend.set_calls == [{"a": 1, "b": 2}]
    assert queue.is_idle()


@pytest.mark.asyncio
async def test_batch_cap_splits_flushes(queue, backend, scheduler) -> None:
    futures = [queue.enqueue(f"k{i}", i) for i in range(12)]

    await scheduler.advance(THROTTLE_MS)
    assert len(backend.set_calls) == 1
    assert list(backend.set_calls[0]) == [f"k{i}" for i in range(10)]
    assert queue.pending_keys() == ["k10", "k11"]

    await scheduler.advance(THROTTLE_MS)
    await asyncio.gather(*futures)
    assert backend.set_calls[1] == {"k10": 10, "k11": 11}


@pytest.mark.asyncio
async def test_unknown_backend_error_rejects_batch_without_backoff(queue, backend, scheduler) -> None:
    backend.set_errors.append(RuntimeError("disk on fire"))
    fut = queue.enqueue("a", 1)

    await scheduler.advance(THROTTLE_MS)

    with pytest.raises(TransientBackendError, match="disk on fire") as exc_info:
        await fut
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert scheduler.armed == []
    assert queue.is_idle()


@pytest.mark.asyncio
async def test_rate_limit_error_backs_off_three_times_the_delay(queue, backend, scheduler, caplog) -> None:
    caplog.set_level(logging.WARNING)
    backend.set_errors.append(RuntimeError("MAX_WRITE_OPERATIONS_PER_MINUTE quota exceeded"))
    fut = queue.enqueue("a", 1)

    await scheduler.advance(THROTTLE_MS)

    with pytest.raises(RateLimitError, match="MAX_WRITE_OPERATIONS_PER_MINUTE"):
        await fut
    assert "Storage quota exceeded, increasing throttle delay" in caplog.text
    assert scheduler.delays[-1] == THROTTLE_MS * 3

    # A write queued during the backoff waits for the longer timer.
    retry = queue.enqueue("a", 2)
    await scheduler.advance(THROTTLE_MS)
    assert len(backend.set_calls) == 1

    await scheduler.advance(THROTTLE_MS * 2)
    await retry
    assert backend.set_calls[-1] == {"a": 2}


@pytest.mark.asyncio
async def test_per_item_quota_error_is_classified_and_backs_off(queue, backend, scheduler) -> None:
    backend.set_errors.append(RuntimeError("QUOTA_BYTES_PER_ITEM quota exceeded"))
    fut = queue.enqueue("a", 1)

    await scheduler.advance(THROTTLE_MS)

    with pytest.raises(QuotaExceededError):
        await fut
    assert scheduler.delays[-1] == THROTTLE_MS * 3


@pytest.mark.asyncio
async def test_flush_is_deferred_near_write_rate_limit(backend, scheduler, caplog) -> None:
    caplog.set_level(logging.WARNING)
    limiter = WriteRateLimiter(max_writes_per_minute=5)  # defers at 4 writes/min
    for _ in range(4):
        limiter.record_write(scheduler.now_ms())
    queue = WriteQueue(backend, scheduler=scheduler, rate_limiter=limiter, write_throttle_ms=THROTTLE_MS)

    fut = queue.enqueue("a", 1)
    await scheduler.advance(THROTTLE_MS)

    assert backend.set_calls == []
    assert queue.pending_keys() == ["a"]
    assert "Approaching write rate limit" in caplog.text
    assert not fut.done()

    # Once the window slides past the recorded writes the queue drains.
    await scheduler.advance(60_000)
    await fut
    assert backend.set_calls == [{"a": 1}]


@pytest.mark.asyncio
async def test_write_enqueued_during_flush_waits_for_next_cycle(scheduler) -> None:
    gate = asyncio.Event()

    class GatedBackend(RecordingBackend):
        async def set(self, items):
            self.set_calls.append(dict(items))
            await gate.wait()

    backend = GatedBackend()
    queue = WriteQueue(backend, scheduler=scheduler, write_throttle_ms=THROTTLE_MS)

    first = queue.enqueue("a", 1)
    advancing = asyncio.create_task(scheduler.advance(THROTTLE_MS))
    await asyncio.sleep(0)

    assert queue.busy_keys() == {"a"}
    second = queue.enqueue("b", 2)
    assert scheduler.armed == []

    gate.set()
    await advancing
    await first
    assert backend.set_calls == [{"a": 1}]
    assert not second.done()

    await scheduler.advance(THROTTLE_MS)
    await second
    assert backend.set_calls == [{"a": 1}, {"b": 2}]


@pytest.mark.asyncio
async def test_discard_drops_pending_write(queue, backend, scheduler) -> None:
    fut = queue.enqueue("timer_x", {"elapsedMs": 1})
    assert queue.discard("timer_x") is True
    assert queue.discard("timer_x") is False

    with pytest.raises(SupersededWriteError):
        await fut
    await scheduler.advance(THROTTLE_MS)
    assert backend.set_calls == []


@pytest.mark.asyncio
async def test_drain_flushes_without_waiting(queue, backend, scheduler) -> None:
    futures = [queue.enqueue(k, k) for k in ("a", "b", "c")]

    await queue.drain()
    await asyncio.gather(*futures)

    assert backend.set_calls == [{"a": "a", "b": "b", "c": "c"}]
    await scheduler.advance(THROTTLE_MS)
    assert len(backend.set_calls) == 1


@pytest.mark.asyncio
async def test_flush_records_write_in_rate_limiter(queue, scheduler) -> None:
    fut = queue.enqueue("a", 1)
    await scheduler.advance(THROTTLE_MS)
    await fut

    assert queue.rate_limiter.writes_in_window(scheduler.now_ms()) == 1


@pytest.mark.asyncio
async def test_failed_flush_is_not_recorded(queue, backend, scheduler) -> None:
    backend.set_errors.append(RuntimeError("nope"))
    fut = queue.enqueue("a", 1)
    await scheduler.advance(THROTTLE_MS)
    with pytest.raises(TransientBackendError):
        await fut

    assert queue.rate_limiter.writes_in_window(scheduler.now_ms()) == 0


def test_fake_scheduler_starts_empty() -> None:
    assert FakeScheduler().armed == []


@pytest.mark.asyncio
async def test_replaced_key_moves_to_the_back_of_the_queue(queue, backend, scheduler) -> None:
    first = queue.enqueue("index", "old")
    others = [queue.enqueue(k, k) for k in ("a", "b")]
    latest = queue.enqueue("index", "new")

    assert queue.pending_keys() == ["a", "b", "index"]

    await scheduler.advance(THROTTLE_MS)
    with pytest.raises(SupersededWriteError):
        await first
    await asyncio.gather(latest, *others)
    assert list(backend.set_calls[0]) == ["a", "b", "index"]
