# src/petatas/storage/manager.py

"""
StorageManager: the persistence facade handed to the rest of the app.

Construct one per process (see bootstrap.create_storage_manager) and pass it
to whatever needs persistence. It owns:
- the write queue + rate limiter shared by both stores,
- the chunked task store,
- the per-task timer store,
- quota helpers.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.ports import Scheduler, StorageBackend
from ..tasks.task_models import Task, TimerState
from .rate_limiter import DEFAULT_MAX_WRITES_PER_MINUTE, WriteRateLimiter
from .task_store import DEFAULT_TARGET_CHUNK_BYTES, ChunkedTaskStore
from .timer_store import TimerStateStore
from .write_queue import DEFAULT_WRITE_THROTTLE_MS, WriteQueue

logger = logging.getLogger(__name__)

NEAR_LIMIT_PERCENT = 80.0


@dataclass(frozen=True, slots=True)
class StoreOptions:
    write_throttle_ms: int = DEFAULT_WRITE_THROTTLE_MS
    max_writes_per_minute: int = DEFAULT_MAX_WRITES_PER_MINUTE
    target_chunk_bytes: int = DEFAULT_TARGET_CHUNK_BYTES


@dataclass(frozen=True, slots=True)
class StorageInfo:
    bytes_used: int
    bytes_available: int
    percent_used: float


class StorageManager:
    def __init__(
        self,
        backend: StorageBackend,
        options: StoreOptions | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.options = options or StoreOptions()
        self._backend = backend
        self._rate_limiter = WriteRateLimiter(self.options.max_writes_per_minute)
        self._queue = WriteQueue(
            backend,
            scheduler=scheduler,
            rate_limiter=self._rate_limiter,
            write_throttle_ms=self.options.write_throttle_ms,
        )
        self._tasks = ChunkedTaskStore(
            backend,
            self._queue,
            target_chunk_bytes=self.options.target_chunk_bytes,
            max_item_bytes=backend.quota_bytes_per_item,
            quota_bytes=backend.quota_bytes,
        )
        self._timers = TimerStateStore(backend, self._queue)

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def queue(self) -> WriteQueue:
        return self._queue

    @property
    def task_store(self) -> ChunkedTaskStore:
        return self._tasks

    @property
    def timer_store(self) -> TimerStateStore:
        return self._timers

    # ---- tasks ----

    async def save_tasks(self, tasks: Sequence[Task]) -> None:
        """
        Persist the whole task collection.

        Raises ValidationError / QuotaExceededError before anything is queued,
        SupersededWriteError when a newer save replaced this one, and the
        classified backend error when the flush failed.
        """
        await self._tasks.save(tasks)
        info = await self.get_storage_info()
        if info.percent_used > NEAR_LIMIT_PERCENT:
            logger.warning(
                "Storage usage at %.2f%% of quota (%d/%d bytes)",
                info.percent_used,
                info.bytes_used,
                self._backend.quota_bytes,
            )

    async def load_tasks(self) -> list[Task]:
        return await self._tasks.load()

    async def clear_tasks(self) -> None:
        await self._tasks.clear()

    # ---- timers ----

    async def save_timer_state(self, state: TimerState) -> None:
        await self._timers.save(state)

    async def load_timer_state(self, task_id: str) -> TimerState | None:
        return await self._timers.load(task_id)

    async def clear_timer_state(self, task_id: str) -> None:
        await self._timers.clear(task_id)

    async def clear_timer_states(self) -> None:
        await self._timers.clear_all()

    # ---- whole store ----

    async def clear_all_data(self) -> None:
        dropped = self._queue.discard_all()
        if dropped:
            logger.info("Dropped %d queued writes before clearing storage", len(dropped))
        try:
            everything = await self._backend.get(None)
            if everything:
                await self._backend.remove(list(everything))
        except Exception:
            logger.exception("Failed to clear all data")
            raise

    async def aclose(self) -> None:
        """Flush queued writes now instead of waiting for the throttle timer."""
        await self._queue.drain()

    # ---- quota ----

    async def get_storage_info(self) -> StorageInfo:
        quota = self._backend.quota_bytes
        try:
            used = int(await self._backend.get_bytes_in_use())
        except Exception:
            logger.exception("Failed to get storage info")
            return StorageInfo(bytes_used=0, bytes_available=quota, percent_used=0.0)

        return StorageInfo(
            bytes_used=used,
            bytes_available=max(0, quota - used),
            percent_used=round(used / quota * 100, 2) if quota else 0.0,
        )

    async def is_storage_near_limit(self) -> bool:
        info = await self.get_storage_info()
        return info.percent_used > NEAR_LIMIT_PERCENT
