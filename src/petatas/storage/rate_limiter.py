# src/petatas/storage/rate_limiter.py

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

WINDOW_MS = 60_000.0
DEFAULT_MAX_WRITES_PER_MINUTE = 120
DEFAULT_DEFER_RATIO = 0.8


class WriteRateLimiter:
    """
    Sliding-window guard on backend write frequency.

    Only successful set() calls are recorded. A flush is deferred once the
    number of writes in the last minute reaches defer_ratio * max_writes_per_minute,
    which keeps us below the backend's own per-minute cap.
    """

    def __init__(
        self,
        max_writes_per_minute: int = DEFAULT_MAX_WRITES_PER_MINUTE,
        *,
        defer_ratio: float = DEFAULT_DEFER_RATIO,
        window_ms: float = WINDOW_MS,
    ) -> None:
        self.max_writes_per_minute = max(1, int(max_writes_per_minute))
        self.defer_ratio = float(defer_ratio)
        self.window_ms = float(window_ms)
        self._history: list[float] = []

    @property
    def threshold(self) -> float:
        return self.max_writes_per_minute * self.defer_ratio

    def _prune(self, now_ms: float) -> None:
        cutoff = now_ms - self.window_ms
        self._history = [ts for ts in self._history if ts > cutoff]

    def writes_in_window(self, now_ms: float) -> int:
        self._prune(now_ms)
        return len(self._history)

    def should_defer(self, now_ms: float) -> bool:
        return self.writes_in_window(now_ms) >= self.threshold

    def record_write(self, now_ms: float) -> None:
        self._history.append(float(now_ms))
        logger.debug("write recorded; %d in window", len(self._history))
