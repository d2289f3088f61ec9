"""Synchronization package."""

from spendsync.sync.engine import (
    PullFailure,
    PushFailure,
    SyncEngine,
    SyncError,
    SyncInProgressError,
    SyncPhaseFailure,
)
from spendsync.sync.reconcile import apply_sync_result, build_pulled_state

__all__ = [
    "PullFailure",
    "PushFailure",
    "SyncEngine",
    "SyncError",
    "SyncInProgressError",
    "SyncPhaseFailure",
    "apply_sync_result",
    "build_pulled_state",
]
