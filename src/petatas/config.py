# src/petatas/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Components receive values from Settings; they never read the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "PETATAS"

BACKEND_MEMORY = "memory"
BACKEND_FILE = "file"
BACKEND_SQLITE = "sqlite"
BACKENDS = (BACKEND_MEMORY, BACKEND_FILE, BACKEND_SQLITE)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    log_level: str
    data_dir: Path

    # ---- Backend ----
    storage_backend: str
    storage_path: Path
    quota_bytes: int
    quota_bytes_per_item: int
    # 0 disables backend-side write-frequency enforcement.
    backend_max_writes_per_minute: int

    # ---- Write queue / chunking ----
    write_throttle_ms: int
    max_writes_per_minute: int
    target_chunk_bytes: int

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv_if_available()

        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/petatas"))

        storage_backend = _env(_k("STORAGE_BACKEND"), BACKEND_SQLITE).strip().lower()
        if storage_backend not in BACKENDS:
            storage_backend = BACKEND_SQLITE

        default_file = "petatas.json" if storage_backend == BACKEND_FILE else "petatas.sqlite3"
        storage_path = _env_path(_k("STORAGE_PATH"), data_dir / default_file)

        return Settings(
            log_level=log_level,
            data_dir=data_dir,
            storage_backend=storage_backend,
            storage_path=storage_path,
            quota_bytes=_env_int(_k("QUOTA_BYTES"), 100 * 1024),
            quota_bytes_per_item=_env_int(_k("QUOTA_BYTES_PER_ITEM"), 8 * 1024),
            backend_max_writes_per_minute=_env_int(_k("BACKEND_MAX_WRITES_PER_MINUTE"), 0),
            write_throttle_ms=_env_int(_k("WRITE_THROTTLE_MS"), 2000),
            max_writes_per_minute=_env_int(_k("MAX_WRITES_PER_MINUTE"), 120),
            target_chunk_bytes=_env_int(_k("TARGET_CHUNK_BYTES"), 7 * 1024),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
