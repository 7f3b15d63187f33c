# src/petatas/storage/timer_store.py

from __future__ import annotations

import logging

from ..core.ports import StorageBackend
from ..tasks.task_models import TimerState
from .errors import ValidationError
from .write_queue import WriteQueue

logger = logging.getLogger(__name__)

TIMER_KEY_PREFIX = "timer_"


def timer_key(task_id: str) -> str:
    return f"{TIMER_KEY_PREFIX}{task_id}"


class TimerStateStore:
    """
    One small record per task under timer_<task_id>.

    Saves share the task store's write queue, so rapid ticks for the same task
    collapse into the latest value.
    """

    def __init__(self, backend: StorageBackend, queue: WriteQueue) -> None:
        self._backend = backend
        self._queue = queue

    async def save(self, state: TimerState) -> None:
        if not isinstance(state, TimerState):
            raise ValidationError(f"Expected TimerState, got {type(state).__name__}")
        state.validate()
        await self._queue.enqueue(timer_key(state.task_id), state.to_dict())

    async def load(self, task_id: str) -> TimerState | None:
        key = timer_key(task_id)
        try:
            found = await self._backend.get(key)
        except Exception:
            logger.exception("Failed to load timer state task_id=%s", task_id)
            return None

        raw = found.get(key)
        if raw is None:
            return None
        try:
            return TimerState.from_dict(raw)
        except ValidationError as e:
            logger.warning("Ignoring invalid timer state task_id=%s: %s", task_id, e)
            return None

    async def clear(self, task_id: str) -> None:
        key = timer_key(task_id)
        # A queued write would bring the record back after the delete.
        self._queue.discard(key)
        try:
            await self._backend.remove(key)
        except Exception:
            logger.exception("Failed to clear timer state task_id=%s", task_id)
            raise

    async def clear_all(self) -> list[str]:
        """Remove every timer record. Returns the removed keys (empty when none matched)."""
        self._queue.discard_prefix(TIMER_KEY_PREFIX)
        try:
            everything = await self._backend.get(None)
            keys = [k for k in everything if k.startswith(TIMER_KEY_PREFIX)]
            if keys:
                await self._backend.remove(keys)
        except Exception:
            logger.exception("Failed to clear timer states")
            raise
        logger.debug("Cleared %d timer states", len(keys))
        return keys
