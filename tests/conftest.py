# tests/conftest.py

from __future__ import annotations

import pytest

from petatas.storage.manager import StorageManager, StoreOptions
from petatas.storage.rate_limiter import WriteRateLimiter
from petatas.storage.write_queue import WriteQueue

from .fakes import FakeScheduler, RecordingBackend

THROTTLE_MS = 20


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture()
def queue(backend: RecordingBackend, scheduler: FakeScheduler) -> WriteQueue:
    return WriteQueue(
        backend,
        scheduler=scheduler,
        rate_limiter=WriteRateLimiter(120),
        write_throttle_ms=THROTTLE_MS,
    )


@pytest.fixture()
def manager(backend: RecordingBackend, scheduler: FakeScheduler) -> StorageManager:
    """
    StorageManager wired with deterministic fakes.

    NOTE: the backend is a real MemoryBackend underneath, so quota checks and
    JSON round-tripping are exercised too.
    """
    return StorageManager(backend, StoreOptions(write_throttle_ms=THROTTLE_MS), scheduler=scheduler)
