"""
Sync Engine

Performs one full bidirectional synchronization on demand:

1. PUSH  - send every local expense (plus the tombstoned server ids) in one
           batch. The server receives the complete client-side set and
           diffs it itself; this is not an incremental delta.
2. PULL  - fetch the server's complete authoritative state and turn it into
           the next local state.

State machine per invocation:

    IDLE -> PUSHING -> PUSH_OK -> PULLING -> PULL_OK -> IDLE       success
    IDLE -> PUSHING -> PUSH_FAILED -> IDLE                          no pull attempted
    IDLE -> PUSHING -> PUSH_OK -> PULLING -> PULL_FAILED -> IDLE    tombstones kept

GUARANTEES:
- sync() never touches local state. It returns a SyncResult; the caller
  applies it with apply_sync_result() only after it returned.
- A failed phase is never retried automatically. Running sync() again after
  any failure is safe: nothing local changed.
- Two overlapping sync() calls are impossible: the second one is rejected
  immediately with SyncInProgressError.
- Each phase has its own time budget; running out surfaces as
  FailureReason.TIMEOUT instead of hanging.
"""

import asyncio
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from spendsync.audit.logger import AuditLogger, create_correlation_id, get_logger
from spendsync.auth.session import NotAuthenticatedError
from spendsync.config import RemoteSettings
from spendsync.identity.resolver import to_wire_payload
from spendsync.models.expense import Expense
from spendsync.models.sync import FailureReason, SyncPhase, SyncResult
from spendsync.services.remote.client import RemoteServiceError, SyncApiClient
from spendsync.services.remote.schemas import PullResponse, PushResponse
from spendsync.sync.reconcile import build_pulled_state


logger = get_logger(__name__)


class SyncError(Exception):
    """Base exception for sync errors."""
    pass


class SyncInProgressError(SyncError):
    """A sync was requested while another one is still running."""
    pass


class SyncPhaseFailure(SyncError):
    """A push or pull phase failed."""

    phase = ""

    def __init__(
        self,
        message: str,
        reason: FailureReason,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        self.reason = reason
        self.status_code = status_code
        self.server_message = server_message
        super().__init__(message)

    @property
    def user_message(self) -> str:
        """Text for the dismissible notification; prefers the server's own words."""
        if self.server_message:
            return f"{self} ({self.server_message})"
        return str(self)


class PushFailure(SyncPhaseFailure):
    """Uploading the local expenses failed. Nothing was pulled."""
    phase = "push"


class PullFailure(SyncPhaseFailure):
    """Upload succeeded but downloading the server state failed."""
    phase = "pull"


_PUSH_MESSAGES = {
    FailureReason.HTTP_STATUS: "The server rejected the upload of your expenses",
    FailureReason.NETWORK: "Could not reach the server to upload your expenses",
    FailureReason.TIMEOUT: "Uploading your expenses took too long",
    FailureReason.MALFORMED_RESPONSE: "The server answered the upload with an unexpected response",
}

_PULL_MESSAGES = {
    FailureReason.HTTP_STATUS: "Your expenses were uploaded, but the server refused to send its copy",
    FailureReason.NETWORK: "Your expenses were uploaded, but the server copy could not be downloaded",
    FailureReason.TIMEOUT: "Your expenses were uploaded, but downloading the server copy took too long",
    FailureReason.MALFORMED_RESPONSE: "Your expenses were uploaded, but the server copy was unreadable",
}


class SyncEngine:
    """
    Two-phase push/pull synchronization with the remote service.

    The engine is stateless between invocations apart from the in-flight
    flag and the phase of the current (or last) run.
    """

    def __init__(
        self,
        client: SyncApiClient,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[RemoteSettings] = None,
    ):
        self._client = client
        self._audit_logger = audit_logger
        self._settings = settings or client.settings
        self._in_flight = False
        self._phase = SyncPhase.IDLE
        self._transitions: list[SyncPhase] = []

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def is_syncing(self) -> bool:
        """True while a sync is running; the UI disables its sync trigger."""
        return self._in_flight

    @property
    def last_transitions(self) -> list[SyncPhase]:
        """Phases visited by the current or most recent run, IDLE to IDLE."""
        return list(self._transitions)

    def _enter(self, phase: SyncPhase) -> None:
        self._phase = phase
        self._transitions.append(phase)

    async def sync(
        self,
        expenses: list[Expense],
        pending_deletion_ids: set[int],
        auth_token: str,
        correlation_id: Optional[UUID] = None,
    ) -> SyncResult:
        """
        Run one push + pull round-trip.

        Args:
            expenses: The entire local expense collection
            pending_deletion_ids: Tombstoned server ids
            auth_token: Bearer token of the logged-in user
            correlation_id: Ties the audit events of this run together

        Returns:
            SyncResult holding the server's complete state

        Raises:
            SyncInProgressError: Another sync is running
            NotAuthenticatedError: No token given
            PushFailure: Push phase failed; no pull was attempted
            PullFailure: Pull phase failed after a successful push
        """
        # Checked and set before the first await: no other task can run
        # in between on a single event loop.
        if self._in_flight:
            raise SyncInProgressError("A sync is already in progress")
        if not auth_token:
            raise NotAuthenticatedError("Log in to synchronize your expenses")

        self._in_flight = True
        self._transitions = []
        self._enter(SyncPhase.IDLE)
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            self._audit_logger.log_sync_started(
                correlation_id,
                local_count=len(expenses),
                pending_deletions=len(pending_deletion_ids),
            )

        try:
            push = await self._push(expenses, pending_deletion_ids, auth_token, correlation_id)
            result = await self._pull(push, pending_deletion_ids, auth_token, correlation_id)
        finally:
            self._in_flight = False
            self._enter(SyncPhase.IDLE)

        if self._audit_logger:
            self._audit_logger.log_sync_succeeded(
                correlation_id,
                created=result.created_count,
                updated=result.updated_count,
                pulled=len(result.expenses),
                dropped=result.dropped_count,
            )
        return result

    def _fail(
        self,
        failure_cls: type,
        reason: FailureReason,
        correlation_id: UUID,
        detail: str,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ) -> SyncPhaseFailure:
        messages = _PUSH_MESSAGES if failure_cls is PushFailure else _PULL_MESSAGES
        failure = failure_cls(
            messages[reason],
            reason,
            status_code=status_code,
            server_message=server_message,
        )
        self._enter(SyncPhase.PUSH_FAILED if failure_cls is PushFailure else SyncPhase.PULL_FAILED)
        logger.warning(
            "sync_phase_failed",
            phase=failure.phase,
            reason=reason.value,
            status_code=status_code,
            detail=detail,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            self._audit_logger.log_sync_failed(
                failure.phase,
                reason.value,
                server_message or detail,
                correlation_id,
            )
        return failure

    async def _push(
        self,
        expenses: list[Expense],
        pending_deletion_ids: set[int],
        auth_token: str,
        correlation_id: UUID,
    ) -> PushResponse:
        self._enter(SyncPhase.PUSHING)
        payload = [to_wire_payload(expense) for expense in expenses]

        try:
            body = await asyncio.wait_for(
                self._client.push_all(payload, sorted(pending_deletion_ids), auth_token),
                timeout=self._settings.push_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise self._fail(
                PushFailure, FailureReason.TIMEOUT, correlation_id,
                f"push exceeded {self._settings.push_timeout_seconds:g}s",
            )
        except RemoteServiceError as e:
            raise self._fail(
                PushFailure, e.reason, correlation_id, str(e),
                status_code=e.status_code, server_message=e.server_message,
            )

        try:
            response = PushResponse.model_validate(body)
        except ValidationError as e:
            raise self._fail(PushFailure, FailureReason.MALFORMED_RESPONSE, correlation_id, str(e))

        self._enter(SyncPhase.PUSH_OK)
        logger.info(
            "sync_push_ok",
            sent=len(payload),
            deleted=len(pending_deletion_ids),
            created=response.created_count,
            updated=response.updated_count,
            correlation_id=str(correlation_id),
        )
        return response

    async def _pull(
        self,
        push: PushResponse,
        pushed_deletion_ids: set[int],
        auth_token: str,
        correlation_id: UUID,
    ) -> SyncResult:
        self._enter(SyncPhase.PULLING)

        try:
            body = await asyncio.wait_for(
                self._client.fetch_all(auth_token),
                timeout=self._settings.pull_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise self._fail(
                PullFailure, FailureReason.TIMEOUT, correlation_id,
                f"pull exceeded {self._settings.pull_timeout_seconds:g}s",
            )
        except RemoteServiceError as e:
            raise self._fail(
                PullFailure, e.reason, correlation_id, str(e),
                status_code=e.status_code, server_message=e.server_message,
            )

        try:
            response = PullResponse.model_validate(body)
        except ValidationError as e:
            raise self._fail(PullFailure, FailureReason.MALFORMED_RESPONSE, correlation_id, str(e))

        expenses, categories, dropped = build_pulled_state(
            response,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id,
        )

        self._enter(SyncPhase.PULL_OK)
        logger.info(
            "sync_pull_ok",
            received=len(response.expenses),
            kept=len(expenses),
            dropped=dropped,
            server_timestamp=response.server_timestamp,
            correlation_id=str(correlation_id),
        )
        return SyncResult(
            created_count=push.created_count,
            updated_count=push.updated_count,
            expenses=expenses,
            categories=categories,
            product_names=sorted(set(response.product_names)),
            server_timestamp=response.server_timestamp,
            dropped_count=dropped,
            pushed_deletion_ids=sorted(pushed_deletion_ids),
        )
