"""
Local Record Store

Typed persistence for everything the app keeps on the device:

    expenses                 list[Expense]
    categories               list[str]   (sorted, always has the sentinel)
    lastSyncTimestamp        str | None  (server clock of the last pull)
    deletedServerExpenseIds  list[int]   (tombstones, stored sorted)
    currentUser              UserSession | None

Each key is read and written independently; there is no cross-key
transaction. Values cross a (de)serialization boundary built on pydantic
TypeAdapters so datetimes are stored as ISO strings and always come back
as datetime objects.

DESIGN DECISION: Reads never raise. A missing, unreadable or corrupt value
is logged and replaced by the caller's fallback. A corrupt expense inside
an otherwise readable list is dropped on its own so one bad row cannot
wipe the whole history on the next write.
"""

import json
from typing import Any, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from spendsync.audit.logger import AuditLogger, get_logger
from spendsync.models.audit import AuditEventBuilder
from spendsync.models.expense import Expense, sort_newest_first, sorted_categories
from spendsync.models.sync import UserSession
from spendsync.services.storage.interface import KeyValueBackend, StorageError


logger = get_logger(__name__)

T = TypeVar("T")


class StoreKeys:
    """Persisted key names."""
    EXPENSES = "expenses"
    CATEGORIES = "categories"
    LAST_SYNC_TIMESTAMP = "lastSyncTimestamp"
    PENDING_DELETIONS = "deletedServerExpenseIds"
    CURRENT_USER = "currentUser"


_EXPENSE = TypeAdapter(Expense)
_EXPENSE_LIST = TypeAdapter(list[Expense])
_STRING_LIST = TypeAdapter(list[str])
_INT_LIST = TypeAdapter(list[int])
_OPTIONAL_STRING = TypeAdapter(Optional[str])
_OPTIONAL_SESSION = TypeAdapter(Optional[UserSession])


class LocalRecordStore:
    """
    Typed, crash-safe wrapper over a KeyValueBackend.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._audit_logger = audit_logger

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    # -------------------------------------------------------------------------
    # Generic read/write
    # -------------------------------------------------------------------------

    def _report_corruption(self, key: str, error: Exception) -> None:
        logger.warning("storage_value_corrupt", key=key, error=str(error))
        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.storage_corruption(key, str(error)))

    def _load_json(self, key: str) -> tuple[bool, Any]:
        """(found, decoded) for a key; found is False when absent or unreadable."""
        try:
            raw = self._backend.get_raw(key)
        except StorageError as e:
            self._report_corruption(key, e)
            return False, None
        if raw is None:
            return False, None
        try:
            return True, json.loads(raw)
        except ValueError as e:
            self._report_corruption(key, e)
            return False, None

    def read(self, key: str, fallback: T, adapter: Optional[TypeAdapter] = None) -> T:
        """
        Return the persisted value for `key`, or `fallback` if absent/corrupt.

        Args:
            key: Persisted key name
            fallback: Value returned when nothing usable is stored
            adapter: TypeAdapter used to hydrate the decoded JSON.
                     Without one the plain decoded JSON is returned.
        """
        found, data = self._load_json(key)
        if not found:
            return fallback
        if adapter is None:
            return data
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            self._report_corruption(key, e)
            return fallback

    def write(self, key: str, value: Any, adapter: Optional[TypeAdapter] = None) -> None:
        """
        Persist `value` under `key`, replacing whatever was there.

        Raises:
            StorageError: If the backend write fails
        """
        data = adapter.dump_python(value, mode="json") if adapter else value
        self._backend.set_raw(key, json.dumps(data, ensure_ascii=False))

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def load_expenses(self) -> list[Expense]:
        """All stored expenses, newest first. Corrupt rows are skipped."""
        found, data = self._load_json(StoreKeys.EXPENSES)
        if not found:
            return []
        if not isinstance(data, list):
            self._report_corruption(StoreKeys.EXPENSES, ValueError("expected a JSON array"))
            return []

        expenses = []
        for index, item in enumerate(data):
            try:
                expenses.append(_EXPENSE.validate_python(item))
            except ValidationError as e:
                logger.warning(
                    "stored_expense_dropped",
                    index=index,
                    error=str(e),
                )
        return sort_newest_first(expenses)

    def save_expenses(self, expenses: list[Expense]) -> None:
        self.write(StoreKeys.EXPENSES, sort_newest_first(expenses), _EXPENSE_LIST)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def load_categories(self) -> list[str]:
        return sorted_categories(self.read(StoreKeys.CATEGORIES, [], _STRING_LIST))

    def save_categories(self, categories: list[str]) -> None:
        self.write(StoreKeys.CATEGORIES, sorted_categories(categories), _STRING_LIST)

    # -------------------------------------------------------------------------
    # Sync metadata
    # -------------------------------------------------------------------------

    def load_last_sync_timestamp(self) -> Optional[str]:
        return self.read(StoreKeys.LAST_SYNC_TIMESTAMP, None, _OPTIONAL_STRING)

    def save_last_sync_timestamp(self, value: Optional[str]) -> None:
        self.write(StoreKeys.LAST_SYNC_TIMESTAMP, value, _OPTIONAL_STRING)

    def load_pending_deletions(self) -> set[int]:
        return set(self.read(StoreKeys.PENDING_DELETIONS, [], _INT_LIST))

    def save_pending_deletions(self, ids: set[int]) -> None:
        self.write(StoreKeys.PENDING_DELETIONS, sorted(ids), _INT_LIST)

    def clear_sync_metadata(self) -> None:
        """Forget the sync watermark and all tombstones."""
        self._backend.delete(StoreKeys.LAST_SYNC_TIMESTAMP)
        self._backend.delete(StoreKeys.PENDING_DELETIONS)

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def load_session(self) -> Optional[UserSession]:
        return self.read(StoreKeys.CURRENT_USER, None, _OPTIONAL_SESSION)

    def save_session(self, session: UserSession) -> None:
        self.write(StoreKeys.CURRENT_USER, session, _OPTIONAL_SESSION)

    def clear_session(self) -> None:
        self._backend.delete(StoreKeys.CURRENT_USER)
