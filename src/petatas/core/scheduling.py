# src/petatas/core/scheduling.py

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class AsyncioScheduler:
    """
    Scheduler port on top of the running asyncio loop.

    Each fired callback runs as its own asyncio Task; we keep a reference to it
    until it finishes so it is not garbage-collected mid-flight.
    """

    def __init__(self) -> None:
        self._running: set[asyncio.Task[None]] = set()

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(
        self, delay_ms: float, callback: Callable[[], Awaitable[None]]
    ) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0.0, float(delay_ms)) / 1000.0, self._spawn, callback)

    def _spawn(self, callback: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.ensure_future(callback())
        self._running.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled callback failed", exc_info=exc)
