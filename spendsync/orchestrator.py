"""
Main Orchestrator for spendsync

This module ties together all the components and defines the flows the
UI calls:
1. Local mutations (add / edit / delete expense, delete product, delete
   category) applied optimistically to the local store
2. CSV import / export
3. Sync (read store -> push -> pull -> replace store)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Bad input is rejected before anything is persisted or sent
- Deleting a server-backed expense always leaves a tombstone behind,
  written before the expense itself is dropped
- The store is replaced by a pull only after the whole round-trip
  succeeded; a failed sync leaves it exactly as it was
"""

from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Callable, Optional, Union

from pydantic import ValidationError

from spendsync.audit import AuditLogger, configure_logging, create_correlation_id, get_logger
from spendsync.auth import SessionManager
from spendsync.config import Settings, get_settings, resolve_data_dir
from spendsync.models.audit import AuditEventBuilder, AuditEventType
from spendsync.models.expense import (
    DEFAULT_CATEGORY,
    Expense,
    Product,
    sort_newest_first,
)
from spendsync.models.identity import ServerId, new_local_id
from spendsync.models.sync import ImportResult, SyncResult
from spendsync.reports import (
    ExpenseFilter,
    Period,
    PeriodSummary,
    filter_expenses,
    summarize_periods,
)
from spendsync.services.csv_io import export_expenses_csv, import_expenses_csv
from spendsync.services.remote import SyncApiClient
from spendsync.services.storage import JsonFileBackend, KeyValueBackend, LocalRecordStore
from spendsync.sync import SyncEngine, SyncInProgressError, apply_sync_result


logger = get_logger(__name__)


class ExpenseValidationError(ValueError):
    """User input rejected before persistence (price, product, date)."""
    pass


class ExpenseNotFoundError(LookupError):
    """No expense with the given id in the local store."""
    pass


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ())) or "expense"
        parts.append(f"{field}: {item.get('msg')}")
    return "; ".join(parts)


class ExpenseBook:
    """
    Local-first expense collection.

    Every mutation reads the current collection, changes it and writes it
    back in one store call. Nothing here talks to the network except
    sync().

    Mutations raise SyncInProgressError while a sync is in flight; the
    pull would otherwise replace the store under them.
    """

    def __init__(
        self,
        store: LocalRecordStore,
        engine: SyncEngine,
        sessions: SessionManager,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._engine = engine
        self._sessions = sessions
        self._audit_logger = audit_logger
        self._clock = clock

    def _audit(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def expenses(self) -> list[Expense]:
        """All expenses, newest first."""
        return self._store.load_expenses()

    def categories(self) -> list[str]:
        return self._store.load_categories()

    def pending_deletions(self) -> set[int]:
        return self._store.load_pending_deletions()

    def last_sync_timestamp(self) -> Optional[str]:
        return self._store.load_last_sync_timestamp()

    def get_expense(self, expense_id: str) -> Expense:
        for expense in self.expenses():
            if expense.id == expense_id:
                return expense
        raise ExpenseNotFoundError(f"Expense not found: {expense_id}")

    def history(self, criteria: ExpenseFilter, tz: Optional[tzinfo] = None) -> list[Expense]:
        return filter_expenses(self.expenses(), criteria, tz)

    def summary(self, now: Optional[datetime] = None) -> dict[Period, PeriodSummary]:
        return summarize_periods(self.expenses(), now or self._clock())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        """
        Refuse local mutations while a sync is in flight.

        The pull that follows would overwrite the store with a snapshot
        the edit never reached.
        """
        if self._engine.is_syncing:
            raise SyncInProgressError("Wait for the sync to finish before changing expenses")

    def _register_category(self, category: str) -> None:
        categories = self._store.load_categories()
        if category != DEFAULT_CATEGORY and category not in categories:
            self._store.save_categories(categories + [category])

    def add_expense(
        self,
        product: Union[str, Product],
        price: Union[Decimal, float, int, str],
        category: Optional[str] = "",
        timestamp: Optional[Union[datetime, str]] = None,
    ) -> Expense:
        """
        Record a new purchase under a fresh client id.

        Raises:
            ExpenseValidationError: Empty product, non-positive price or
                unparsable timestamp. Nothing is persisted.
        """
        self._ensure_idle()
        try:
            expense = Expense(
                id=new_local_id(),
                product=product,
                price=price,
                category=category,
                timestamp=timestamp if timestamp is not None else self._clock(),
            )
        except ValidationError as e:
            message = _validation_message(e)
            self._audit(AuditEventBuilder.validation_rejected(message))
            raise ExpenseValidationError(message) from e

        self._store.save_expenses(self._store.load_expenses() + [expense])
        self._register_category(expense.category)
        self._audit(AuditEventBuilder.expense_added(expense.id, expense.product.name, str(expense.price)))
        return expense

    def update_expense(
        self,
        expense_id: str,
        *,
        product: Optional[Union[str, Product]] = None,
        price: Optional[Union[Decimal, float, int, str]] = None,
        category: Optional[str] = None,
        timestamp: Optional[Union[datetime, str]] = None,
    ) -> Expense:
        """
        Edit an expense in place. The id never changes.

        Only the arguments given are changed; pass category="" to move the
        expense to the default category.

        Raises:
            ExpenseNotFoundError: Unknown id
            ExpenseValidationError: The edited expense would be invalid
        """
        self._ensure_idle()
        expenses = self._store.load_expenses()
        index = next((i for i, e in enumerate(expenses) if e.id == expense_id), None)
        if index is None:
            raise ExpenseNotFoundError(f"Expense not found: {expense_id}")

        changes = {
            name: value
            for name, value in (
                ("product", product),
                ("price", price),
                ("category", category),
                ("timestamp", timestamp),
            )
            if value is not None
        }
        current = expenses[index]
        data = current.model_dump()
        data.update(changes)
        try:
            updated = Expense.model_validate(data)
        except ValidationError as e:
            message = _validation_message(e)
            self._audit(AuditEventBuilder.validation_rejected(message))
            raise ExpenseValidationError(message) from e

        expenses[index] = updated
        self._store.save_expenses(expenses)
        self._register_category(updated.category)
        self._audit(AuditEventBuilder.expense_updated(expense_id, sorted(changes)))
        return updated

    def _drop(self, doomed: list[Expense]) -> int:
        """
        Remove `doomed` from the collection, tombstoning server-backed ones.

        Returns the number of tombstones added.
        """
        server_ids = {
            identity.id
            for identity in (e.identity for e in doomed)
            if isinstance(identity, ServerId)
        }
        if server_ids:
            pending = self._store.load_pending_deletions()
            self._store.save_pending_deletions(pending | server_ids)

        doomed_ids = {e.id for e in doomed}
        remaining = [e for e in self._store.load_expenses() if e.id not in doomed_ids]
        self._store.save_expenses(remaining)
        return len(server_ids)

    def delete_expense(self, expense_id: str) -> None:
        """
        Delete one expense.

        Raises:
            ExpenseNotFoundError: Unknown id
        """
        self._ensure_idle()
        expense = self.get_expense(expense_id)
        tombstoned = self._drop([expense])
        self._audit(AuditEventBuilder.expense_deleted(expense_id, tombstoned=bool(tombstoned)))

    def delete_product(self, product_name: str) -> int:
        """Delete every expense for a product. Returns how many were removed."""
        self._ensure_idle()
        doomed = [e for e in self.expenses() if e.product.name == product_name]
        tombstoned = self._drop(doomed) if doomed else 0
        self._audit(AuditEventBuilder.bulk_deleted(
            AuditEventType.PRODUCT_DELETED, "product", product_name, len(doomed), tombstoned,
        ))
        return len(doomed)

    def delete_category(self, category: str) -> int:
        """
        Delete every expense in a category and, unless it is the default
        sentinel, the category itself. Returns how many expenses were removed.
        """
        self._ensure_idle()
        doomed = [e for e in self.expenses() if e.category == category]
        tombstoned = self._drop(doomed) if doomed else 0

        if category != DEFAULT_CATEGORY:
            categories = self._store.load_categories()
            if category in categories:
                self._store.save_categories([c for c in categories if c != category])

        self._audit(AuditEventBuilder.bulk_deleted(
            AuditEventType.CATEGORY_DELETED, "category", category, len(doomed), tombstoned,
        ))
        return len(doomed)

    # -------------------------------------------------------------------------
    # CSV
    # -------------------------------------------------------------------------

    def import_csv(self, text: str) -> ImportResult:
        """
        Add every valid CSV row as a new local expense.

        Raises:
            CsvFormatError: If the header is unusable (nothing is imported)
        """
        self._ensure_idle()
        result = import_expenses_csv(text)
        if result.expenses:
            self._store.save_expenses(self._store.load_expenses() + result.expenses)
            categories = self._store.load_categories()
            self._store.save_categories(categories + [e.category for e in result.expenses])

        for reason in result.skipped_reasons:
            logger.info("csv_row_skipped", reason=reason)
        self._audit(AuditEventBuilder.import_completed(
            result.imported_count, result.skipped_count, create_correlation_id(),
        ))
        return result

    def export_csv(self) -> str:
        expenses = self.expenses()
        self._audit(AuditEventBuilder.export_completed(len(expenses)))
        return export_expenses_csv(expenses)

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    @property
    def is_syncing(self) -> bool:
        return self._engine.is_syncing

    async def sync(self) -> SyncResult:
        """
        Push everything, pull everything, replace the local store.

        Raises:
            NotAuthenticatedError: Nobody is logged in
            SyncInProgressError: A sync is already running
            PushFailure / PullFailure: The store was left untouched
        """
        session = self._sessions.require()
        result = await self._engine.sync(
            sort_newest_first(self._store.load_expenses()),
            self._store.load_pending_deletions(),
            session.access_token,
        )
        apply_sync_result(self._store, result)
        return result


def create_app_components(
    settings: Optional[Settings] = None,
    backend: Optional[KeyValueBackend] = None,
    client: Optional[SyncApiClient] = None,
) -> tuple[ExpenseBook, SessionManager, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; loaded from the environment if None.
        backend: Storage backend; a JsonFileBackend in the configured data
                 directory if None. Tests pass an InMemoryBackend.
        client: Remote API client; built from the remote settings if None.

    Returns:
        (expense_book, session_manager, audit_logger)
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging("DEBUG" if app_settings.debug_mode else app_settings.log_level)

    audit_logger = AuditLogger(buffer_size=app_settings.audit_buffer_size)

    if backend is None:
        storage_settings = settings.storage
        backend = JsonFileBackend(
            resolve_data_dir(storage_settings.data_dir),
            write_attempts=storage_settings.write_attempts,
        )
    store = LocalRecordStore(backend, audit_logger=audit_logger)

    client = client or SyncApiClient(settings.remote)
    sessions = SessionManager(store, client, audit_logger=audit_logger)
    sessions.hydrate()

    engine = SyncEngine(client, audit_logger=audit_logger, settings=client.settings)
    book = ExpenseBook(store, engine, sessions, audit_logger=audit_logger)
    logger.info(
        "app_components_created",
        environment=app_settings.app_environment,
        data_backend=type(backend).__name__,
    )

    return book, sessions, audit_logger
