# src/petatas/storage/backends/memory.py

from __future__ import annotations

from .base import BackendLimits, KeyValueBackend, item_size


class MemoryBackend(KeyValueBackend):
    """
    In-process backend for tests, demos and single-process use.

    Values are kept JSON-encoded, so callers never share references with the store.
    """

    def __init__(self, limits: BackendLimits | None = None) -> None:
        super().__init__(limits)
        self._data: dict[str, str] = {}

    def _fetch(self, keys: list[str] | None) -> dict[str, str]:
        if keys is None:
            return dict(self._data)
        return {k: self._data[k] for k in keys if k in self._data}

    def _store(self, items: dict[str, str]) -> None:
        self._data.update(items)

    def _delete(self, keys: list[str]) -> None:
        for k in keys:
            self._data.pop(k, None)

    def _total_bytes(self) -> int:
        return sum(item_size(k, v) for k, v in self._data.items())
