"""
Data Models Package

This package contains all Pydantic models used in spendsync.
All data flowing through the system must conform to these schemas.
"""

from spendsync.models.expense import (
    DEFAULT_CATEGORY,
    Expense,
    Product,
    normalize_category,
    sort_newest_first,
    sorted_categories,
)
from spendsync.models.identity import (
    ExpenseIdentity,
    LocalId,
    ServerId,
    is_server_id,
    new_local_id,
    resolve_identity,
)
from spendsync.models.sync import (
    FailureReason,
    ImportResult,
    SyncPhase,
    SyncResult,
    UserSession,
)
from spendsync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "DEFAULT_CATEGORY",
    "Expense",
    "Product",
    "normalize_category",
    "sort_newest_first",
    "sorted_categories",
    # Identity
    "ExpenseIdentity",
    "LocalId",
    "ServerId",
    "is_server_id",
    "new_local_id",
    "resolve_identity",
    # Sync / session
    "FailureReason",
    "ImportResult",
    "SyncPhase",
    "SyncResult",
    "UserSession",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
