"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of local mutations and sync round-trips
2. Debugging capability when a pull drops records
3. User can see history of their interactions

The audit logger:
- Writes every event to the structured (JSON) log
- Keeps the most recent events in memory for display
- Never raises: a logging problem must not break an expense write or a sync
"""

import logging
from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from spendsync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through stdlib logging at `level`.

    structlog renders the JSON line; stdlib only has to print the message.
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))
    logging.getLogger("spendsync").setLevel(getattr(logging, level, logging.INFO))


def get_logger(name: str):
    """Module logger; importing this module guarantees structlog is configured."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An in-memory ring buffer (for the "recent activity" view)
    """

    def __init__(self, buffer_size: int = 500):
        self._events: deque[AuditEvent] = deque(maxlen=buffer_size)
        self._logger = structlog.get_logger("spendsync.audit")

    def log(self, event: AuditEvent) -> None:
        """Record an audit event."""
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Rendering problems (odd detail values) must not reach the caller
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )

        self._events.append(event)

    def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events))[:limit]

    def events_for_correlation(self, correlation_id: UUID) -> list[AuditEvent]:
        """All buffered events of one sync/import, in chronological order."""
        return [e for e in self._events if e.correlation_id == correlation_id]

    # -------------------------------------------------------------------------
    # Shorthands used by the orchestrator and the sync engine
    # -------------------------------------------------------------------------

    def log_sync_started(
        self,
        correlation_id: UUID,
        local_count: int,
        pending_deletions: int,
    ) -> None:
        self.log(AuditEventBuilder.sync_started(correlation_id, local_count, pending_deletions))

    def log_sync_failed(
        self,
        phase: str,
        reason: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.sync_failed(phase, reason, error_message, correlation_id))

    def log_sync_succeeded(
        self,
        correlation_id: UUID,
        created: int,
        updated: int,
        pulled: int,
        dropped: int,
    ) -> None:
        self.log(AuditEventBuilder.sync_succeeded(correlation_id, created, updated, pulled, dropped))

    def log_record_dropped(
        self,
        record_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_dropped(record_id, reason, correlation_id))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a sync or an import and pass it through.
    """
    return uuid4()
