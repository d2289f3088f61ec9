"""
Storage Services Package

Provides the abstract key/value interface, its concrete backends and the
typed LocalRecordStore built on top of them.
"""

from spendsync.services.storage.interface import (
    KeyValueBackend,
    StorageError,
    StorageWriteError,
)
from spendsync.services.storage.backends import (
    InMemoryBackend,
    JsonFileBackend,
)
from spendsync.services.storage.record_store import (
    LocalRecordStore,
    StoreKeys,
)

__all__ = [
    # Interfaces
    "KeyValueBackend",
    # Exceptions
    "StorageError",
    "StorageWriteError",
    # Backends
    "InMemoryBackend",
    "JsonFileBackend",
    # Typed store
    "LocalRecordStore",
    "StoreKeys",
]
