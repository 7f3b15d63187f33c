"""
Storage subsystem.

Components:
- errors.py: exception taxonomy
- rate_limiter.py: sliding-window write-frequency guard
- write_queue.py: coalescing, throttled, batched writes
- task_store.py: task collection split into index + chunks
- timer_store.py: per-task timer records
- manager.py: StorageManager facade + quota helpers
- backends/: concrete key-value adapters
"""
