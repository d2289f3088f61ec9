"""
Expense Identity

An expense id lives in one of two disjoint subspaces:

- server ids: canonical non-negative base-10 integers assigned by the
  remote service ("42")
- local ids: opaque tokens (UUID4) assigned on this device while the
  server has not acknowledged the record yet

DESIGN DECISION: The id is persisted as a plain string (that is what the
store and the wire carry), but code never inspects the string shape
directly. `resolve_identity` is the only place that classifies an id and
everything else works with the tagged ServerId / LocalId it returns.
"""

import re
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# "0" or a digit run without a leading zero. No sign, no whitespace,
# no decimal point: the string must survive str(int(s)) unchanged.
_SERVER_ID_PATTERN = re.compile(r"^(0|[1-9][0-9]*)$")


class ServerId(BaseModel):
    """Identifier assigned by the remote service."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["server"] = "server"
    id: int = Field(..., ge=0)

    def __str__(self) -> str:
        return str(self.id)


class LocalId(BaseModel):
    """Identifier assigned on this device, not yet known to the server."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["local"] = "local"
    token: str = Field(..., min_length=1)

    def __str__(self) -> str:
        return self.token


ExpenseIdentity = Annotated[Union[ServerId, LocalId], Field(discriminator="kind")]


def is_server_id(raw: str) -> bool:
    """
    True iff `raw` is a canonical non-negative integer string.

    "123" -> True; "0123", "-5", "abc", "1.5", " 7" -> False.
    """
    if not isinstance(raw, str):
        return False
    return _SERVER_ID_PATTERN.match(raw) is not None


def resolve_identity(raw: str) -> Union[ServerId, LocalId]:
    """Classify a persisted id string into its tagged variant."""
    if is_server_id(raw):
        return ServerId(id=int(raw))
    return LocalId(token=raw)


def new_local_id() -> str:
    """Generate a fresh client-side identifier."""
    return str(uuid4())
