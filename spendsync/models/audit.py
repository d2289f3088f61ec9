"""
Audit Models for spendsync

Every local mutation and every sync attempt is recorded as an audit event.
This provides:
1. A history the user can inspect ("what did the last sync do?")
2. Debugging information when a pull drops records or a push fails
3. The ability to reconstruct what happened to a deleted expense

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Local mutations
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    PRODUCT_DELETED = "product_deleted"
    CATEGORY_DELETED = "category_deleted"
    VALIDATION_REJECTED = "validation_rejected"

    # CSV
    IMPORT_COMPLETED = "import_completed"
    EXPORT_COMPLETED = "export_completed"

    # Sync
    SYNC_STARTED = "sync_started"
    SYNC_PUSH_FAILED = "sync_push_failed"
    SYNC_PULL_FAILED = "sync_pull_failed"
    SYNC_SUCCEEDED = "sync_succeeded"
    RECORD_DROPPED = "record_dropped"

    # Session
    USER_LOGGED_IN = "user_logged_in"
    USER_LOGGED_OUT = "user_logged_out"
    LOGIN_FAILED = "login_failed"

    # Storage
    STORAGE_CORRUPTION = "storage_corruption"


# Names and emails are user-controlled and end up in descriptions
DESCRIPTION_MAX_LENGTH = 500


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'category', 'sync')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Expense id, category name, ... (ids may be numeric strings)"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one sync or one import"
    )

    description: str = Field(
        ...,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    @field_validator('description', mode='before')
    @classmethod
    def clip_description(cls, v: Any) -> Any:
        if isinstance(v, str) and len(v) > DESCRIPTION_MAX_LENGTH:
            return v[: DESCRIPTION_MAX_LENGTH - 3] + "..."
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, "Café", "5500")
        event = AuditEventBuilder.sync_succeeded(correlation_id, 3, 1, 12, 0)
    """

    @staticmethod
    def expense_added(expense_id: str, product: str, price: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense added: {product}",
            details={"product": product, "price": price},
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(expense_id: str, changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(expense_id: str, tombstoned: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            description=(
                "Expense deleted, server will be told on next sync"
                if tombstoned else "Local-only expense deleted"
            ),
            details={"tombstoned": tombstoned},
            is_user_action=True,
        )

    @staticmethod
    def bulk_deleted(
        event_type: AuditEventType,
        entity_type: str,
        name: str,
        removed: int,
        tombstoned: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=name,
            description=f"Deleted {removed} expense(s) for {entity_type} {name}",
            details={"removed": removed, "tombstoned": tombstoned},
            is_user_action=True,
        )

    @staticmethod
    def validation_rejected(message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            description="Expense input rejected",
            error_message=message,
            is_user_action=True,
        )

    @staticmethod
    def import_completed(
        imported: int,
        skipped: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"CSV import: {imported} imported, {skipped} skipped",
            details={"imported": imported, "skipped": skipped},
            is_user_action=True,
        )

    @staticmethod
    def export_completed(exported: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_COMPLETED,
            entity_type="export",
            description=f"CSV export: {exported} expense(s)",
            details={"exported": exported},
            is_user_action=True,
        )

    @staticmethod
    def sync_started(
        correlation_id: UUID,
        local_count: int,
        pending_deletions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Sync started",
            details={
                "local_count": local_count,
                "pending_deletions": pending_deletions,
            },
            is_user_action=True,
        )

    @staticmethod
    def sync_failed(
        phase: str,
        reason: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SYNC_PUSH_FAILED if phase == "push"
            else AuditEventType.SYNC_PULL_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            entity_type="sync",
            correlation_id=correlation_id,
            description=f"Sync {phase} failed ({reason})",
            details={"phase": phase, "reason": reason},
            error_message=error_message,
        )

    @staticmethod
    def sync_succeeded(
        correlation_id: UUID,
        created: int,
        updated: int,
        pulled: int,
        dropped: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_SUCCEEDED,
            severity=AuditSeverity.WARNING if dropped else AuditSeverity.INFO,
            entity_type="sync",
            correlation_id=correlation_id,
            description=f"Sync finished: {pulled} expense(s) now local",
            details={
                "created": created,
                "updated": updated,
                "pulled": pulled,
                "dropped": dropped,
            },
        )

    @staticmethod
    def record_dropped(
        record_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DROPPED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=record_id,
            correlation_id=correlation_id,
            description="Pulled record dropped during conversion",
            error_message=reason,
        )

    @staticmethod
    def user_logged_in(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_LOGGED_IN,
            entity_type="session",
            entity_id=email,
            description=f"Logged in as {email}",
            is_user_action=True,
        )

    @staticmethod
    def user_logged_out(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_LOGGED_OUT,
            entity_type="session",
            entity_id=email,
            description=f"Logged out {email}, sync metadata cleared",
            is_user_action=True,
        )

    @staticmethod
    def login_failed(email: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            entity_id=email,
            description=f"Login failed for {email}",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def storage_corruption(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_CORRUPTION,
            severity=AuditSeverity.WARNING,
            entity_type="storage_key",
            entity_id=key,
            description=f"Persisted value for '{key}' unreadable, using default",
            error_message=error_message,
        )
