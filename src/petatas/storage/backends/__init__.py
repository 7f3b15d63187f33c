"""
Concrete StorageBackend adapters.

- memory.py: in-process dict (tests, demos)
- json_file.py: single JSON document on disk
- sqlite.py: embedded SQLite key-value table
"""

from .base import QUOTA_BYTES, QUOTA_BYTES_PER_ITEM, BackendError, BackendLimits, KeyValueBackend
from .json_file import JsonFileBackend
from .memory import MemoryBackend
from .sqlite import SqliteBackend

__all__ = [
    "QUOTA_BYTES",
    "QUOTA_BYTES_PER_ITEM",
    "BackendError",
    "BackendLimits",
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "SqliteBackend",
]
