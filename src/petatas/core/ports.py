# src/petatas/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the storage core.

The core depends on Protocols instead of concrete implementations.
This keeps storage backends and timers swappable and makes testing easier.
"""

from typing import Any, Awaitable, Callable, Protocol

JsonValue = Any
# Anything json.dumps accepts: dict / list / str / int / float / bool / None.


class StorageBackend(Protocol):
    """
    Byte- and rate-limited async key-value store.

    Mirrors the extension storage area:
    - get(None) returns every item, get("k") / get(["a", "b"]) only the present keys
    - set() may raise with a message containing QUOTA_BYTES_PER_ITEM,
      QUOTA_BYTES or MAX_WRITE_OPERATIONS_PER_MINUTE
    """

    quota_bytes: int
    quota_bytes_per_item: int

    async def get(self, keys: str | list[str] | None = None) -> dict[str, JsonValue]: ...

    async def set(self, items: dict[str, JsonValue]) -> None: ...

    async def remove(self, keys: str | list[str]) -> None: ...

    async def get_bytes_in_use(self) -> int: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """
    Timer port used by the write queue.

    call_later runs the coroutine function after delay_ms; the returned handle
    cancels it if it has not fired yet. now_ms is the clock used for rate limiting.
    """

    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], Awaitable[None]]) -> TimerHandle: ...
