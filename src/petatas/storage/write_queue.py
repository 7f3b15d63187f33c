# src/petatas/storage/write_queue.py

from __future__ import annotations

"""
Coalescing write queue.

Sits in front of a StorageBackend and turns a stream of per-key writes into
throttled, batched set() calls:
- one pending payload per key (a newer enqueue supersedes the older one),
- one flush timer for the whole queue,
- at most batch_size keys per set(),
- deferral when the rate limiter says we are close to the write cap,
- a longer delay after quota / write-frequency rejections.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass

from ..core.ports import JsonValue, Scheduler, StorageBackend, TimerHandle
from ..core.scheduling import AsyncioScheduler
from .errors import StorageError, SupersededWriteError, classify_backend_error, is_backoff_error
from .rate_limiter import WriteRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_WRITE_THROTTLE_MS = 2000
DEFAULT_BATCH_SIZE = 10
BACKOFF_MULTIPLIER = 3


@dataclass(slots=True)
class PendingWrite:
    key: str
    payload: JsonValue
    future: asyncio.Future[None]
    enqueued_at: float


class WriteQueue:
    def __init__(
        self,
        backend: StorageBackend,
        *,
        scheduler: Scheduler | None = None,
        rate_limiter: WriteRateLimiter | None = None,
        write_throttle_ms: float = DEFAULT_WRITE_THROTTLE_MS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._backend = backend
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._rate_limiter = rate_limiter or WriteRateLimiter()
        self.write_throttle_ms = max(0.0, float(write_throttle_ms))
        self.batch_size = max(1, int(batch_size))

        self._pending: dict[str, PendingWrite] = {}
        self._in_flight: set[str] = set()
        self._timer: TimerHandle | None = None
        self._flushing = False

    # ---- introspection ----

    @property
    def rate_limiter(self) -> WriteRateLimiter:
        return self._rate_limiter

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def busy_keys(self) -> set[str]:
        """Keys that are queued or currently being written."""
        return set(self._pending) | self._in_flight

    def is_idle(self) -> bool:
        return not self._pending and not self._flushing and self._timer is None

    # ---- public API ----

    def enqueue(self, key: str, payload: JsonValue) -> asyncio.Future[None]:
        """
        Queue payload for key and return a future that settles when it is flushed.

        Must be called from a running event loop. A still-pending write for the
        same key fails with SupersededWriteError and is never sent; the new
        write takes the last place in the queue, so flush order follows the
        order of the latest enqueues.
        """
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[None] = loop.create_future()

        existing = self._pending.pop(key, None)
        if existing is not None:
            self._supersede(existing)

        self._pending[key] = PendingWrite(
            key=key,
            payload=payload,
            future=fut,
            enqueued_at=self._scheduler.now_ms(),
        )
        self._arm(self.write_throttle_ms)
        return fut

    def discard(self, key: str) -> bool:
        """Drop a queued (not yet sent) write for key. Returns True if one was dropped."""
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        self._supersede(entry)
        return True

    def discard_prefix(self, prefix: str) -> list[str]:
        keys = [k for k in self._pending if k.startswith(prefix)]
        for k in keys:
            self.discard(k)
        return keys

    def discard_all(self) -> list[str]:
        return self.discard_prefix("")

    async def drain(self) -> None:
        """
        Flush everything that is queued right now, ignoring the throttle delay.

        Used on shutdown. Stops early if the backend starts rejecting with quota /
        rate-limit errors; the remainder stays queued for the regular cycle.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        while self._pending:
            backoff = await self._flush_batch(respect_rate_limit=False)
            if backoff:
                logger.warning("Drain stopped by backend limits; %d writes still queued", len(self._pending))
                self._arm(self.write_throttle_ms * BACKOFF_MULTIPLIER)
                return

    # ---- internals ----

    @staticmethod
    def _supersede(entry: PendingWrite) -> None:
        if not entry.future.done():
            entry.future.set_exception(SupersededWriteError(entry.key))

    def _arm(self, delay_ms: float) -> None:
        if self._timer is not None or self._flushing:
            return
        self._timer = self._scheduler.call_later(delay_ms, self._on_timer)

    async def _on_timer(self) -> None:
        self._timer = None
        self._flushing = True
        try:
            backoff = await self._flush_batch()
        finally:
            self._flushing = False

        if backoff:
            self._arm(self.write_throttle_ms * BACKOFF_MULTIPLIER)
        elif self._pending:
            self._arm(self.write_throttle_ms)

    async def _flush_batch(self, *, respect_rate_limit: bool = True) -> bool:
        """Send one batch. Returns True when the next cycle should back off."""
        if not self._pending:
            return False

        now = self._scheduler.now_ms()
        if respect_rate_limit and self._rate_limiter.should_defer(now):
            logger.warning("Approaching write rate limit, delaying writes (%d queued)", len(self._pending))
            return False

        batch = list(itertools.islice(self._pending.values(), self.batch_size))
        keys = [entry.key for entry in batch]
        for key in keys:
            del self._pending[key]
        self._in_flight.update(keys)

        try:
            await self._backend.set({entry.key: entry.payload for entry in batch})
        except Exception as e:
            err: StorageError = classify_backend_error(e, keys=keys)
            logger.error("Batch write failed keys=%s: %s", keys, err.message, exc_info=e)
            for entry in batch:
                if not entry.future.done():
                    entry.future.set_exception(err)
            if is_backoff_error(err):
                logger.warning("Storage quota exceeded, increasing throttle delay")
                return True
            return False
        finally:
            self._in_flight.difference_update(keys)

        self._rate_limiter.record_write(now)
        for entry in batch:
            if not entry.future.done():
                entry.future.set_result(None)
        logger.debug("Flushed %d keys", len(keys))
        return False
