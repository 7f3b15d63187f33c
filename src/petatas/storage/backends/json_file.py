# src/petatas/storage/backends/json_file.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from .base import BackendLimits, KeyValueBackend, item_size

logger = logging.getLogger(__name__)


class JsonFileBackend(KeyValueBackend):
    """
    Whole store in one JSON file: {"key": "<encoded json value>", ...}.

    Every write rewrites the file atomically (tmp file + os.replace).
    A missing or unreadable file is treated as an empty store.
    """

    def __init__(self, path: str | Path, limits: BackendLimits | None = None) -> None:
        super().__init__(limits)
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._data = self._read_file()
        logger.info("JsonFileBackend ready path=%s keys=%d", self._path, len(self._data))

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read %s; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top-level value is not an object", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_file(self, data: dict[str, str]) -> None:
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            os.chmod(self._path, 0o600)

    def _fetch(self, keys: list[str] | None) -> dict[str, str]:
        if keys is None:
            return dict(self._data)
        return {k: self._data[k] for k in keys if k in self._data}

    def _store(self, items: dict[str, str]) -> None:
        data = {**self._data, **items}
        self._write_file(data)
        self._data = data

    def _delete(self, keys: list[str]) -> None:
        drop = set(keys)
        data = {k: v for k, v in self._data.items() if k not in drop}
        if len(data) != len(self._data):
            self._write_file(data)
            self._data = data

    def _total_bytes(self) -> int:
        return sum(item_size(k, v) for k, v in self._data.items())
