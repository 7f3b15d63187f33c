"""
Core ports.

- ports.py: StorageBackend / Scheduler protocols
- scheduling.py: asyncio implementation of the Scheduler port
"""
