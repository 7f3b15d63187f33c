# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Keep .env local (gitignored); nothing here is read at runtime.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "PETATAS_LOG_LEVEL": "Logging level (default: INFO).",
    # Paths (gitignored)
    "PETATAS_DATA_DIR": "Local data directory for the store and logs (default: .local/petatas).",
    # Backend
    "PETATAS_STORAGE_BACKEND": "memory | file | sqlite (default: sqlite; unknown values fall back to sqlite).",
    "PETATAS_STORAGE_PATH": (
        "Store path (default: <data_dir>/petatas.sqlite3, or <data_dir>/petatas.json for the file backend)."
    ),
    "PETATAS_QUOTA_BYTES": "Total byte quota of the store (default: 102400).",
    "PETATAS_QUOTA_BYTES_PER_ITEM": "Byte limit per key, key plus JSON value (default: 8192).",
    "PETATAS_BACKEND_MAX_WRITES_PER_MINUTE": (
        "Reject backend writes above this many per minute (default: 0, no limit)."
    ),
    # Write queue / chunking
    "PETATAS_WRITE_THROTTLE_MS": "Delay before queued writes are flushed (default: 2000).",
    "PETATAS_MAX_WRITES_PER_MINUTE": "Write cap; flushes are deferred at 80% of it (default: 120).",
    "PETATAS_TARGET_CHUNK_BYTES": "Target size of one task chunk (default: 7168).",
}
