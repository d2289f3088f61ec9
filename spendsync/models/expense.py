"""
Core Data Models for spendsync

These models define the strict schemas for every expense that is persisted
locally or exchanged with the remote service. They are designed to:
1. Reject bad input (non-positive price, empty product, unparsable date)
   before anything is written
2. Normalize the category at the point of entry
3. Round-trip losslessly through JSON (datetimes come back as datetimes)

DESIGN DECISION: Money is a Decimal, never a float. Prices are shown in
COP without cents, but imported data may carry decimals and the sums in
the reports must be exact.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from spendsync.models.identity import (
    LocalId,
    ServerId,
    new_local_id,
    resolve_identity,
)


# Reserved category used whenever none is supplied. It is an i18n key:
# the UI translates it, the data layer only stores it.
DEFAULT_CATEGORY = "category.undefined"


def normalize_category(value: Optional[str]) -> str:
    """Empty or whitespace-only categories become the default sentinel."""
    if value is None:
        return DEFAULT_CATEGORY
    stripped = str(value).strip()
    return stripped or DEFAULT_CATEGORY


class Product(BaseModel):
    """
    What was bought.

    Semantically just a name. `color` and `value` are decorative metadata
    kept for the charts (series color, select-box value).
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Product display name"
    )
    color: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Chart color for this product"
    )
    value: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Select-box value for this product"
    )


class Expense(BaseModel):
    """
    A single recorded purchase.

    INVARIANTS (enforced on construction and on assignment):
    - price > 0
    - category is never empty (DEFAULT_CATEGORY substituted)
    - timestamp is a real datetime
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str = Field(
        default_factory=new_local_id,
        min_length=1,
        description="Server id (numeric string) or local token"
    )
    product: Product
    price: Decimal = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Amount paid, strictly positive"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        description="Category name or the default sentinel"
    )
    timestamp: datetime = Field(
        ...,
        description="When the purchase happened"
    )

    @field_validator('product', mode='before')
    @classmethod
    def coerce_product_name(cls, v: Any) -> Any:
        """Allow a bare product name where a Product is expected."""
        if isinstance(v, str):
            return {"name": v}
        return v

    @field_validator('price', mode='before')
    @classmethod
    def coerce_float_price(cls, v: Any) -> Any:
        # Go through str() so 12.34 stays 12.34 and not its binary expansion
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator('category', mode='before')
    @classmethod
    def default_empty_category(cls, v: Any) -> str:
        return normalize_category(v)

    @property
    def identity(self) -> Union[ServerId, LocalId]:
        """Tagged form of `id`."""
        return resolve_identity(self.id)

    @property
    def product_name(self) -> str:
        return self.product.name

    @property
    def is_server_backed(self) -> bool:
        return isinstance(self.identity, ServerId)


def sort_newest_first(expenses: list[Expense]) -> list[Expense]:
    """Return a new list ordered by timestamp, newest first."""
    return sorted(expenses, key=lambda e: e.timestamp.timestamp(), reverse=True)


def sorted_categories(names: list[str]) -> list[str]:
    """Sorted, de-duplicated category registry that always has the sentinel."""
    registry = {normalize_category(name) for name in names}
    registry.add(DEFAULT_CATEGORY)
    return sorted(registry)
