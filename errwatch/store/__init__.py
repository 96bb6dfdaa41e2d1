"""Persistence layer for errwatch.

Submodules:
    backends -- Durable key-value slots (in-memory and file backed).
    records  -- Record and alert stores that round-trip through a slot.
"""

from errwatch.store.backends import FileBackend, KeyValueBackend, MemoryBackend, build_backend
from errwatch.store.records import ALERTS_SLOT, ERRORS_SLOT, AlertStore, RecordStore

__all__ = [
    "ALERTS_SLOT",
    "ERRORS_SLOT",
    "AlertStore",
    "FileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "RecordStore",
    "build_backend",
]
