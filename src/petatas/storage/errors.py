# src/petatas/storage/errors.py

"""
Exceptions raised by the storage layer.

Every error carries a machine-readable error_code and a context dict so
callers can log diagnostics without parsing messages.
"""

from __future__ import annotations

from typing import Any

SUPERSEDED_MESSAGE = "Write operation replaced by newer write"

# Markers used by the extension storage area (and mirrored by our backends).
QUOTA_PER_ITEM_MARKER = "QUOTA_BYTES_PER_ITEM"
QUOTA_TOTAL_MARKER = "QUOTA_BYTES"
RATE_LIMIT_MARKER = "MAX_WRITE_OPERATIONS_PER_MINUTE"


class StorageError(Exception):
    """Base exception for storage errors."""

    error_code = "storage_error"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(StorageError):
    """Task or timer payload is malformed; nothing was queued."""

    error_code = "validation_error"


class SupersededWriteError(StorageError):
    """
    A queued write was dropped before reaching the backend because a newer
    write (or a deletion) for the same key replaced it.

    This is an expected outcome of coalescing, not a failure.
    """

    error_code = "write_superseded"

    def __init__(self, key: str | None = None) -> None:
        super().__init__(SUPERSEDED_MESSAGE, context={"key": key} if key else None)
        self.key = key


class QuotaExceededError(StorageError):
    """Serialized data does not fit the per-item or total byte budget."""

    error_code = "quota_exceeded"


class RateLimitError(StorageError):
    """Backend rejected the write because of its write-frequency limit."""

    error_code = "rate_limited"


class TransientBackendError(StorageError):
    """Any other backend rejection."""

    error_code = "backend_error"


def classify_backend_error(err: BaseException, *, keys: list[str] | None = None) -> StorageError:
    """
    Map a raw backend rejection onto the storage taxonomy.

    The original message is kept so marker substrings stay visible to callers.
    """
    if isinstance(err, StorageError):
        return err

    msg = str(err) or err.__class__.__name__
    context: dict[str, Any] = {"keys": list(keys or []), "cause": err.__class__.__name__}

    if RATE_LIMIT_MARKER in msg:
        out: StorageError = RateLimitError(msg, context=context)
    elif QUOTA_TOTAL_MARKER in msg:
        # Also matches QUOTA_BYTES_PER_ITEM.
        out = QuotaExceededError(msg, context=context)
    else:
        out = TransientBackendError(msg, context=context)

    out.__cause__ = err
    return out


def is_backoff_error(err: BaseException) -> bool:
    """True for quota / write-frequency rejections that should slow the flush cadence."""
    return isinstance(err, (QuotaExceededError, RateLimitError))
