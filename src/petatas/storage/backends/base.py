# src/petatas/storage/backends/base.py

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any

from ..errors import QUOTA_PER_ITEM_MARKER, QUOTA_TOTAL_MARKER, RATE_LIMIT_MARKER

logger = logging.getLogger(__name__)

# Extension sync storage area limits.
QUOTA_BYTES = 100 * 1024
QUOTA_BYTES_PER_ITEM = 8 * 1024


class BackendError(Exception):
    """Raised by backends; the message carries the same markers as the extension API."""


@dataclass(frozen=True, slots=True)
class BackendLimits:
    quota_bytes: int = QUOTA_BYTES
    quota_bytes_per_item: int = QUOTA_BYTES_PER_ITEM
    # None disables write-frequency enforcement.
    max_write_operations_per_minute: int | None = None


def encode_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def decode_value(raw: str) -> Any:
    return json.loads(raw)


def item_size(key: str, encoded: str) -> int:
    return len(key.encode("utf-8")) + len(encoded.encode("utf-8"))


def estimate_size(value: Any) -> int:
    """UTF-8 byte length of the compact JSON form of value."""
    return len(encode_value(value).encode("utf-8"))


def normalize_keys(keys: str | list[str] | tuple[str, ...] | None) -> list[str] | None:
    if keys is None:
        return None
    if isinstance(keys, str):
        return [keys]
    return [str(k) for k in keys]


class KeyValueBackend(ABC):
    """
    Shared StorageBackend behaviour.

    Subclasses only move encoded JSON strings in and out; quota checks,
    key normalization and (optional) write-frequency limits live here so
    every adapter rejects writes the same way the extension storage area does.
    """

    def __init__(self, limits: BackendLimits | None = None) -> None:
        self.limits = limits or BackendLimits()
        self._write_times: deque[float] = deque()

    @property
    def quota_bytes(self) -> int:
        return self.limits.quota_bytes

    @property
    def quota_bytes_per_item(self) -> int:
        return self.limits.quota_bytes_per_item

    # ---- storage primitives ----

    @abstractmethod
    def _fetch(self, keys: list[str] | None) -> dict[str, str]: ...

    @abstractmethod
    def _store(self, items: dict[str, str]) -> None: ...

    @abstractmethod
    def _delete(self, keys: list[str]) -> None: ...

    @abstractmethod
    def _total_bytes(self) -> int: ...

    # ---- StorageBackend ----

    async def get(self, keys: str | list[str] | None = None) -> dict[str, Any]:
        raw = self._fetch(normalize_keys(keys))
        return {k: decode_value(v) for k, v in raw.items()}

    async def set(self, items: dict[str, Any]) -> None:
        if not items:
            return

        encoded = {str(k): encode_value(v) for k, v in items.items()}
        for key, value in encoded.items():
            size = item_size(key, value)
            if size > self.limits.quota_bytes_per_item:
                raise BackendError(
                    f"{QUOTA_PER_ITEM_MARKER} quota exceeded (key={key} size={size})"
                )

        existing = self._fetch(list(encoded))
        total_after = (
            self._total_bytes()
            - sum(item_size(k, v) for k, v in existing.items())
            + sum(item_size(k, v) for k, v in encoded.items())
        )
        if total_after > self.limits.quota_bytes:
            raise BackendError(f"{QUOTA_TOTAL_MARKER} quota exceeded (total={total_after})")

        self._check_write_rate()
        self._store(encoded)

    async def remove(self, keys: str | list[str]) -> None:
        names = normalize_keys(keys) or []
        if names:
            self._delete(names)

    async def get_bytes_in_use(self) -> int:
        return self._total_bytes()

    def _check_write_rate(self) -> None:
        limit = self.limits.max_write_operations_per_minute
        if limit is None:
            return
        now = time.monotonic()
        while self._write_times and now - self._write_times[0] >= 60.0:
            self._write_times.popleft()
        if len(self._write_times) >= limit:
            raise BackendError(f"{RATE_LIMIT_MARKER} quota exceeded")
        self._write_times.append(now)
