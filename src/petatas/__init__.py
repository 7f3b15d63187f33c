"""
petatas: persistence layer for the PetaTas checklist panel.

Pasted tables become tasks with per-item timers; this package stores them on
a byte- and rate-limited key-value backend. Entry point for applications:
petatas.bootstrap.create_storage_manager().
"""

__version__ = "0.1.0"
