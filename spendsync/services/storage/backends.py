"""
Key/Value Backends

JsonFileBackend keeps one JSON document per key inside a data directory:

    <data_dir>/expenses.json
    <data_dir>/categories.json
    <data_dir>/lastSyncTimestamp.json
    ...

TRADEOFFS:
- No transactions across keys (the store never needs them)
- Single writer assumed: two processes pointing at the same directory
  get last-writer-wins per key

Writes go to a temporary file in the same directory and are moved into
place with os.replace, which is atomic on POSIX and Windows. A crash
mid-write leaves the previous document untouched.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendsync.audit.logger import get_logger
from spendsync.services.storage.interface import (
    KeyValueBackend,
    StorageError,
    StorageWriteError,
)


logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileBackend(KeyValueBackend):
    """
    File-per-key backend with atomic replace-on-write.
    """

    SUFFIX = ".json"

    def __init__(self, data_dir: Path, write_attempts: int = 3):
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._write_attempts = write_attempts

    @property
    def data_dir(self) -> Path:
        return self._dir

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._dir / f"{key}{self.SUFFIX}"

    def get_raw(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}")
        except UnicodeDecodeError as e:
            raise StorageError(f"'{key}' is not valid UTF-8: {e}")

    def set_raw(self, key: str, value: str) -> None:
        path = self._path_for(key)

        @retry(
            retry=retry_if_exception_type(OSError),
            stop=stop_after_attempt(self._write_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
            reraise=True,
        )
        def _write() -> None:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise

        try:
            _write()
        except OSError as e:
            logger.error("storage_write_failed", key=key, error=str(e))
            raise StorageWriteError(f"Failed to write '{key}': {e}")

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageWriteError(f"Failed to delete '{key}': {e}")

    def keys(self) -> list[str]:
        return sorted(
            p.name[: -len(self.SUFFIX)]
            for p in self._dir.glob(f"*{self.SUFFIX}")
            if not p.name.startswith(".")
        )


class InMemoryBackend(KeyValueBackend):
    """
    Dictionary-backed backend for tests and throwaway sessions.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_raw(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)
