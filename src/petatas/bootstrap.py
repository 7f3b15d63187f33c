# src/petatas/bootstrap.py

"""
Composition root.

- loads settings once (or takes them injected),
- configures logging on request,
- builds the backend adapter selected by settings,
- wires a single StorageManager.
"""

from __future__ import annotations

import logging

from .config import BACKEND_FILE, BACKEND_MEMORY, Settings, get_settings
from .core.ports import Scheduler
from .logging_setup import setup_logging
from .storage.backends import BackendLimits, JsonFileBackend, KeyValueBackend, MemoryBackend, SqliteBackend
from .storage.manager import StorageManager, StoreOptions

logger = logging.getLogger(__name__)


def create_backend(settings: Settings) -> KeyValueBackend:
    limits = BackendLimits(
        quota_bytes=settings.quota_bytes,
        quota_bytes_per_item=settings.quota_bytes_per_item,
        max_write_operations_per_minute=settings.backend_max_writes_per_minute or None,
    )

    if settings.storage_backend == BACKEND_MEMORY:
        return MemoryBackend(limits)
    if settings.storage_backend == BACKEND_FILE:
        return JsonFileBackend(settings.storage_path, limits)
    return SqliteBackend(settings.storage_path, limits)


def create_storage_manager(
    *,
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
    configure_logging: bool = False,
) -> StorageManager:
    """
    Build the process-wide StorageManager.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if configure_logging:
        level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
        setup_logging(log_dir=settings.data_dir, console_level=level)

    backend = create_backend(settings)
    options = StoreOptions(
        write_throttle_ms=settings.write_throttle_ms,
        max_writes_per_minute=settings.max_writes_per_minute,
        target_chunk_bytes=settings.target_chunk_bytes,
    )
    manager = StorageManager(backend, options, scheduler=scheduler)
    logger.info(
        "StorageManager ready backend=%s throttle_ms=%s max_writes_per_minute=%s",
        settings.storage_backend,
        options.write_throttle_ms,
        options.max_writes_per_minute,
    )
    return manager
