# src/petatas/storage/backends/sqlite.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from pathlib import Path

from .base import BackendLimits, KeyValueBackend

logger = logging.getLogger(__name__)


class SqliteBackend(KeyValueBackend):
    """
    SQLite key-value backend.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "petatas.sqlite3", limits: BackendLimits | None = None) -> None:
        super().__init__(limits)
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SqliteBackend ready db=%s bytes=%s", self._db_path, self._total_bytes())

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- primitives ----

    def _fetch(self, keys: list[str] | None) -> dict[str, str]:
        conn = self._get_conn()
        try:
            if keys is None:
                rows = conn.execute("SELECT key, value FROM kv").fetchall()
            elif not keys:
                return {}
            else:
                placeholders = ",".join("?" for _ in keys)
                rows = conn.execute(
                    f"SELECT key, value FROM kv WHERE key IN ({placeholders})", keys
                ).fetchall()
            return {str(k): str(v) for k, v in rows}
        finally:
            conn.close()

    def _store(self, items: dict[str, str]) -> None:
        conn = self._get_conn()
        try:
            conn.executemany(
                "INSERT INTO kv(key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                list(items.items()),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, keys: list[str]) -> None:
        conn = self._get_conn()
        try:
            conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
            conn.commit()
        finally:
            conn.close()

    def _total_bytes(self) -> int:
        conn = self._get_conn()
        try:
            # length() counts characters for TEXT; cast to BLOB for UTF-8 byte length.
            (n,) = conn.execute(
                "SELECT COALESCE(SUM(length(CAST(key AS BLOB)) + length(CAST(value AS BLOB))), 0) FROM kv"
            ).fetchone()
            return int(n)
        finally:
            conn.close()
