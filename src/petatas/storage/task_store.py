# src/petatas/storage/task_store.py

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..core.ports import JsonValue, StorageBackend
from ..tasks.task_models import Task
from .backends.base import QUOTA_BYTES_PER_ITEM, estimate_size
from .errors import QuotaExceededError, ValidationError
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)

TASKS_INDEX_KEY = "tasks_index"
CHUNK_KEY_PREFIX = "tasks_"
# Pre-chunking single-item key; removed once chunked data is written.
LEGACY_TASKS_KEY = "tasks"
INDEX_VERSION = 1

DEFAULT_TARGET_CHUNK_BYTES = 7 * 1024
MIN_TARGET_CHUNK_BYTES = 256
CHUNK_MARGIN_BYTES = 64

_CHUNK_KEY_RE = re.compile(r"^tasks_\d+$")


def chunk_key(ordinal: int) -> str:
    return f"{CHUNK_KEY_PREFIX}{ordinal}"


def is_chunk_key(key: str) -> bool:
    return bool(_CHUNK_KEY_RE.match(key))


def clamp_target_chunk_bytes(target: int, max_item_bytes: int = QUOTA_BYTES_PER_ITEM) -> int:
    return min(max(MIN_TARGET_CHUNK_BYTES, int(target)), max_item_bytes - CHUNK_MARGIN_BYTES)


@dataclass(slots=True)
class TaskIndex:
    version: int
    chunks: list[str]
    total: int
    updated_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "chunks": list(self.chunks),
            "total": self.total,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> TaskIndex | None:
        """Parse a stored index; None when it is missing or malformed."""
        if not isinstance(raw, dict):
            return None
        chunks = raw.get("chunks")
        total = raw.get("total", 0)
        if not isinstance(chunks, list) or not all(isinstance(k, str) for k in chunks):
            return None
        if not isinstance(total, int) or isinstance(total, bool) or total < 0:
            return None
        version = raw.get("version", INDEX_VERSION)
        updated_at = raw.get("updatedAt", 0)
        return cls(
            version=int(version) if isinstance(version, (int, float)) else INDEX_VERSION,
            chunks=list(chunks),
            total=total,
            updated_at=int(updated_at) if isinstance(updated_at, (int, float)) else 0,
        )


@dataclass(slots=True)
class ChunkPlan:
    keys: list[str]
    payloads: list[list[JsonValue]]
    index: TaskIndex

    def total_bytes(self) -> int:
        return sum(estimate_size(p) for p in self.payloads) + estimate_size(self.index.to_dict())


def build_chunks(
    records: Sequence[JsonValue],
    *,
    target_chunk_bytes: int = DEFAULT_TARGET_CHUNK_BYTES,
    max_item_bytes: int = QUOTA_BYTES_PER_ITEM,
    now_ms: int | None = None,
) -> ChunkPlan:
    """
    Greedily pack records, in order, into as few chunks as fit target_chunk_bytes.

    A record that is larger than the target on its own gets a chunk of its own;
    one that would not fit a backend item at all raises QuotaExceededError.
    """
    keys: list[str] = []
    payloads: list[list[JsonValue]] = []

    current: list[JsonValue] = []
    current_bytes = 2  # "[]"

    def flush() -> None:
        nonlocal current, current_bytes
        if not current:
            return
        keys.append(chunk_key(len(keys)))
        payloads.append(current)
        current = []
        current_bytes = 2

    for pos, rec in enumerate(records):
        size = estimate_size(rec)
        if size + 2 + len(chunk_key(len(keys) + 1)) > max_item_bytes:
            raise QuotaExceededError(
                f"Task at position {pos} is {size} bytes; exceeds per-item limit of {max_item_bytes} bytes",
                context={"position": pos, "size": size, "limit": max_item_bytes},
            )

        added = size + (1 if current else 0)  # comma separator
        if current and current_bytes + added > target_chunk_bytes:
            flush()
            added = size
        current.append(rec)
        current_bytes += added
    flush()

    index = TaskIndex(
        version=INDEX_VERSION,
        chunks=list(keys),
        total=len(records),
        updated_at=int(time.time() * 1000) if now_ms is None else int(now_ms),
    )
    return ChunkPlan(keys=keys, payloads=payloads, index=index)


class ChunkedTaskStore:
    """
    Task collection persisted as an index record plus size-bounded chunks.

    Layout:
      tasks_index -> {"version": 1, "chunks": ["tasks_0", ...], "total": N, "updatedAt": ms}
      tasks_0     -> [task, task, ...]

    The index is the only authority on which chunk keys are live. Every save
    rewrites the whole collection; chunks and index go through the write queue
    together (index last) so they normally land in one backend set().
    """

    def __init__(
        self,
        backend: StorageBackend,
        queue: WriteQueue,
        *,
        target_chunk_bytes: int = DEFAULT_TARGET_CHUNK_BYTES,
        max_item_bytes: int = QUOTA_BYTES_PER_ITEM,
        quota_bytes: int | None = None,
    ) -> None:
        self._backend = backend
        self._queue = queue
        self.max_item_bytes = int(max_item_bytes)
        self.target_chunk_bytes = clamp_target_chunk_bytes(target_chunk_bytes, self.max_item_bytes)
        self.quota_bytes = int(quota_bytes if quota_bytes is not None else backend.quota_bytes)

    # ---- save ----

    @staticmethod
    def _validate(tasks: Sequence[Task]) -> None:
        seen: set[str] = set()
        for pos, task in enumerate(tasks):
            if not isinstance(task, Task):
                raise ValidationError(
                    f"Item at position {pos} is not a Task ({type(task).__name__})",
                    context={"position": pos},
                )
            task.validate()
            if task.id in seen:
                raise ValidationError(f"Duplicate task id {task.id!r}", context={"task_id": task.id})
            seen.add(task.id)

    def plan(self, tasks: Sequence[Task]) -> ChunkPlan:
        """Validate and chunk tasks without writing anything."""
        if isinstance(tasks, (str, bytes)) or not isinstance(tasks, Sequence):
            raise ValidationError("Tasks must be a sequence of Task objects")
        self._validate(tasks)

        plan = build_chunks(
            [t.to_dict() for t in tasks],
            target_chunk_bytes=self.target_chunk_bytes,
            max_item_bytes=self.max_item_bytes,
        )
        total = plan.total_bytes()
        if total > self.quota_bytes:
            raise QuotaExceededError(
                f"Data size (~{total} bytes) exceeds storage limit of {self.quota_bytes} bytes",
                context={"size": total, "limit": self.quota_bytes, "tasks": len(tasks)},
            )
        return plan

    async def save(self, tasks: Sequence[Task]) -> None:
        plan = self.plan(tasks)

        # Chunks still queued by an earlier save that this plan does not use.
        live = set(plan.keys)
        for key in self._queue.pending_keys():
            if is_chunk_key(key) and key not in live:
                self._queue.discard(key)

        futures = [self._queue.enqueue(k, p) for k, p in zip(plan.keys, plan.payloads)]
        futures.append(self._queue.enqueue(TASKS_INDEX_KEY, plan.index.to_dict()))

        previous = await self._previous_keys()

        results = await asyncio.gather(*futures, return_exceptions=True)
        for res in results:
            if isinstance(res, BaseException):
                raise res

        logger.debug("Saved %d tasks in %d chunks", plan.index.total, len(plan.keys))
        await self._remove_stale(previous, plan.keys)

    async def _previous_keys(self) -> list[str]:
        """Chunk keys of the currently stored index (and the legacy key, if present)."""
        try:
            found = await self._backend.get([TASKS_INDEX_KEY, LEGACY_TASKS_KEY])
        except Exception:
            logger.debug("Could not read previous task index", exc_info=True)
            return []

        keys: list[str] = []
        index = TaskIndex.from_dict(found.get(TASKS_INDEX_KEY))
        if index is not None:
            keys.extend(index.chunks)
        if LEGACY_TASKS_KEY in found:
            keys.append(LEGACY_TASKS_KEY)
        return keys

    async def _remove_stale(self, previous: Sequence[str], current: Sequence[str]) -> None:
        keep = set(current) | self._queue.busy_keys()
        stale = [k for k in dict.fromkeys(previous) if k not in keep]
        if not stale:
            return
        try:
            await self._backend.remove(stale)
            logger.debug("Removed stale task keys %s", stale)
        except Exception:
            logger.exception("Failed to remove stale task keys %s", stale)

    # ---- load ----

    async def load(self) -> list[Task]:
        found = await self._backend.get(TASKS_INDEX_KEY)
        raw_index = found.get(TASKS_INDEX_KEY)
        index = TaskIndex.from_dict(raw_index)
        if index is None:
            if raw_index is not None:
                logger.warning("Ignoring malformed task index: %r", raw_index)
            return []
        if not index.chunks:
            return []

        chunks = await self._backend.get(list(index.chunks))

        tasks: list[Task] = []
        seen = 0
        for key in index.chunks:
            entries = chunks.get(key)
            if not isinstance(entries, list):
                logger.warning("Task chunk %s is missing or malformed; skipping", key)
                continue
            for entry in entries:
                seen += 1
                try:
                    tasks.append(Task.from_dict(entry))
                except ValidationError as e:
                    logger.warning("Dropping invalid task record from %s: %s", key, e)

        if seen != index.total:
            logger.warning("Task index reports %d entries but chunks hold %d", index.total, seen)
        return tasks

    # ---- clear ----

    async def clear(self) -> None:
        for key in self._queue.pending_keys():
            if key == TASKS_INDEX_KEY or is_chunk_key(key):
                self._queue.discard(key)

        everything = await self._backend.get(None)
        keys: list[str] = []
        index = TaskIndex.from_dict(everything.get(TASKS_INDEX_KEY))
        if index is not None:
            keys.extend(index.chunks)
        keys.extend(k for k in everything if is_chunk_key(k))
        keys.append(TASKS_INDEX_KEY)
        keys = list(dict.fromkeys(keys))

        await self._backend.remove(keys)
        logger.info("Cleared stored tasks (%d keys)", len(keys))
