"""
Sync and Session Models

Result and state types shared by the sync engine, the session manager and
the callers that render them.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from spendsync.models.expense import Expense


class SyncPhase(str, Enum):
    """
    Where a sync invocation currently is.

    Success:      IDLE -> PUSHING -> PUSH_OK -> PULLING -> PULL_OK -> IDLE
    Push failure: IDLE -> PUSHING -> PUSH_FAILED -> IDLE
    Pull failure: IDLE -> PUSHING -> PUSH_OK -> PULLING -> PULL_FAILED -> IDLE
    """
    IDLE = "idle"
    PUSHING = "pushing"
    PUSH_OK = "push_ok"
    PUSH_FAILED = "push_failed"
    PULLING = "pulling"
    PULL_OK = "pull_ok"
    PULL_FAILED = "pull_failed"


class FailureReason(str, Enum):
    """Why a sync phase failed."""
    HTTP_STATUS = "http_status"                 # non-2xx response
    NETWORK = "network"                         # connection refused, DNS, reset...
    TIMEOUT = "timeout"                         # phase exceeded its time budget
    MALFORMED_RESPONSE = "malformed_response"   # 2xx but body not as agreed


class SyncResult(BaseModel):
    """
    Outcome of one successful push + pull round-trip.

    `expenses` and `categories` are the complete new local state; applying
    the result replaces what the store holds, it never merges.
    """

    created_count: int = Field(ge=0, description="Rows the server inserted on push")
    updated_count: int = Field(ge=0, description="Rows the server updated on push")

    expenses: list[Expense] = Field(
        default_factory=list,
        description="Server's authoritative expenses, newest first"
    )
    categories: list[str] = Field(
        default_factory=list,
        description="Sorted category registry including the default sentinel"
    )
    product_names: list[str] = Field(
        default_factory=list,
        description="Product suggestions reported by the server"
    )
    server_timestamp: str = Field(
        ...,
        description="Server clock at pull time (advisory watermark)"
    )
    dropped_count: int = Field(
        default=0,
        ge=0,
        description="Pulled records rejected during conversion"
    )
    pushed_deletion_ids: list[int] = Field(
        default_factory=list,
        description="Tombstones the push phase sent; only these are cleared"
    )


class UserSession(BaseModel):
    """An authenticated user on this device."""

    email: str = Field(..., min_length=3, max_length=320)
    access_token: str = Field(..., min_length=1)
    logged_in_at: datetime = Field(default_factory=datetime.now)

    @property
    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class ImportResult(BaseModel):
    """Outcome of a CSV import."""

    expenses: list[Expense] = Field(default_factory=list)
    skipped_count: int = Field(default=0, ge=0)
    skipped_reasons: list[str] = Field(
        default_factory=list,
        description="One 'line N: reason' entry per skipped row"
    )

    @property
    def imported_count(self) -> int:
        return len(self.expenses)

    @property
    def has_skips(self) -> bool:
        return self.skipped_count > 0
