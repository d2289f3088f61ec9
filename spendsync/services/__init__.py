"""Services package."""

from spendsync.services.csv_io import (
    CsvFormatError,
    export_expenses_csv,
    import_expenses_csv,
)
from spendsync.services.remote import (
    RemoteServiceError,
    SyncApiClient,
)
from spendsync.services.storage import (
    InMemoryBackend,
    JsonFileBackend,
    KeyValueBackend,
    LocalRecordStore,
    StorageError,
    StorageWriteError,
    StoreKeys,
)

__all__ = [
    # CSV
    "CsvFormatError",
    "export_expenses_csv",
    "import_expenses_csv",
    # Remote
    "RemoteServiceError",
    "SyncApiClient",
    # Storage
    "InMemoryBackend",
    "JsonFileBackend",
    "KeyValueBackend",
    "LocalRecordStore",
    "StorageError",
    "StorageWriteError",
    "StoreKeys",
]
