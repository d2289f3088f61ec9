"""Remote sync service package."""

from spendsync.services.remote.client import RemoteServiceError, SyncApiClient
from spendsync.services.remote.schemas import (
    LoginResponse,
    PullResponse,
    PushResponse,
    WireCategory,
)

__all__ = [
    "LoginResponse",
    "PullResponse",
    "PushResponse",
    "RemoteServiceError",
    "SyncApiClient",
    "WireCategory",
]
