"""
Wire schemas for the remote sync service.

Only the envelope is validated here. Individual pulled expenses are kept
as raw dicts because a malformed row must be dropped on its own rather
than failing the whole pull (see identity.resolver.from_wire_expense).
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PushResponse(BaseModel):
    """Body of a successful POST /api/sync/replace-all-client-data."""
    model_config = ConfigDict(extra="ignore")

    created_count: int = Field(..., ge=0)
    updated_count: int = Field(..., ge=0)


class WireCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str


class PullResponse(BaseModel):
    """Body of a successful GET /api/sync/get-all-server-data."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    expenses: list[Any]
    categories: list[WireCategory]
    product_names: list[str] = Field(default_factory=list, alias="productNames")
    server_timestamp: str = Field(..., min_length=1)

    @field_validator('categories', mode='before')
    @classmethod
    def accept_plain_names(cls, v: Any) -> Any:
        """Tolerate ["Food", ...] as well as [{"id": 1, "name": "Food"}, ...]."""
        if isinstance(v, list):
            return [{"name": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator('product_names', mode='before')
    @classmethod
    def drop_null_product_names(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [item for item in v if isinstance(item, str) and item.strip()]
        return v


class LoginResponse(BaseModel):
    """Body of a successful POST /api/auth/login."""
    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: Optional[str] = None


def server_message(body: Union[dict, Any]) -> Optional[str]:
    """The human-readable message a server error body carries, if any."""
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None
