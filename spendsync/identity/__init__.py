"""Identity resolution package."""

from spendsync.identity.resolver import (
    RecordConversionError,
    from_wire_expense,
    to_wire_payload,
)
from spendsync.models.identity import (
    LocalId,
    ServerId,
    is_server_id,
    new_local_id,
    resolve_identity,
)

__all__ = [
    "LocalId",
    "RecordConversionError",
    "ServerId",
    "from_wire_expense",
    "is_server_id",
    "new_local_id",
    "resolve_identity",
    "to_wire_payload",
]
