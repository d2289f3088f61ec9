"""
Pull Reconciliation

DESIGN DECISION: The protocol is full-state replace, last writer wins.
The local store is never merged with the server's answer; after a
successful round-trip it becomes an exact copy of it. This module holds
the two halves of that contract:

- build_pulled_state(): turn a validated pull response into the new local
  state (drop soft-deleted rows, convert the rest one by one, derive the
  category registry)
- apply_sync_result(): overwrite the store with that state and clear the
  tombstones

KNOWN LIMITATION: two devices editing between syncs are not reconciled.
Whichever device pushes last wins; the other device's unsynced edits are
overwritten on its next pull. No conflict is surfaced to the user.
"""

from typing import Optional
from uuid import UUID

from spendsync.audit.logger import AuditLogger, get_logger
from spendsync.identity.resolver import RecordConversionError, from_wire_expense
from spendsync.models.expense import Expense, sort_newest_first, sorted_categories
from spendsync.models.sync import SyncResult
from spendsync.services.remote.schemas import PullResponse
from spendsync.services.storage.record_store import LocalRecordStore


logger = get_logger(__name__)


def _is_soft_deleted(record: object) -> bool:
    return isinstance(record, dict) and record.get("deleted_at") not in (None, "")


def build_pulled_state(
    response: PullResponse,
    audit_logger: Optional[AuditLogger] = None,
    correlation_id: Optional[UUID] = None,
) -> tuple[list[Expense], list[str], int]:
    """
    Convert a pull response into the next local state.

    Returns:
        (expenses newest first, sorted category registry, dropped_count)

    The registry is the union of the server's category list, every
    category referenced by a kept expense, and the default sentinel, so a
    server that forgets to list a category cannot orphan an expense.
    """
    expenses: list[Expense] = []
    seen_ids: set[str] = set()
    dropped = 0

    for record in response.expenses:
        if _is_soft_deleted(record):
            continue
        try:
            expense = from_wire_expense(record)
        except RecordConversionError as e:
            dropped += 1
            logger.warning("pulled_record_dropped", record_id=e.record_id, reason=str(e))
            if audit_logger:
                audit_logger.log_record_dropped(e.record_id, str(e), correlation_id)
            continue

        if expense.id in seen_ids:
            dropped += 1
            logger.warning("pulled_record_duplicate", record_id=expense.id)
            continue
        seen_ids.add(expense.id)
        expenses.append(expense)

    categories = sorted_categories(
        [category.name for category in response.categories]
        + [expense.category for expense in expenses]
    )
    return sort_newest_first(expenses), categories, dropped


def apply_sync_result(store: LocalRecordStore, result: SyncResult) -> None:
    """
    Make the local store an exact copy of a successful pull.

    Replaces the expense collection and the category registry, records the
    server watermark and clears the tombstones the push actually sent.
    Call only after both sync phases succeeded.

    Tombstones are cleared last: if the process dies half-way, the next
    sync re-sends deletions the server already applied, which is harmless.
    A tombstone recorded after the push snapshot stays pending.
    """
    store.save_expenses(result.expenses)
    store.save_categories(result.categories)
    store.save_last_sync_timestamp(result.server_timestamp)
    store.save_pending_deletions(store.load_pending_deletions() - set(result.pushed_deletion_ids))
    logger.info(
        "sync_result_applied",
        expenses=len(result.expenses),
        categories=len(result.categories),
        server_timestamp=result.server_timestamp,
    )
