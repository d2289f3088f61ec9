"""
Abstract Storage Interface

DESIGN DECISION: The local record store talks to a tiny key/value
backend rather than to the filesystem directly. This allows us to:
1. Keep data in JSON files on disk for the real app
2. Use in-memory storage for testing
3. Swap in a browser-storage bridge or SQLite later without touching
   the typed store or the sync engine

The interface is intentionally simple: raw strings in, raw strings out.
Typing and (de)serialization live one layer up, in LocalRecordStore.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueBackend(ABC):
    """
    Abstract interface for durable key/value persistence.

    Any backend (JSON files, browser storage bridge, SQLite...)
    must implement these methods.
    """

    @abstractmethod
    def get_raw(self, key: str) -> Optional[str]:
        """
        Read the raw serialized value for a key.

        Args:
            key: Persisted key name (e.g. 'expenses')

        Returns:
            The stored string, or None if the key was never written

        Raises:
            StorageError: If the backend cannot be read at all
        """
        pass

    @abstractmethod
    def set_raw(self, key: str, value: str) -> None:
        """
        Replace the value for a key.

        The write is all-or-nothing: a reader sees either the old
        value or the new one, never a mix.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Remove a key. Deleting a missing key is not an error.
        """
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """
        List the keys currently stored.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageWriteError(StorageError):
    """A value could not be persisted."""
    pass
