"""
Identity Resolver

Translates expenses between their local representation and the shape the
remote sync service speaks.

Push payload per expense:
    {"id": "42",  "local_id": None,       ...}   server row 42, update it
    {"id": None,  "local_id": "<uuid4>",  ...}   new row, client calls it <uuid4>

Pull record per expense:
    {"id": 42, "local_id": "...", "productName": "...", "price": "5500.00",
     "category": "...", "timestamp": "...", "updated_at": "...",
     "deleted_at": null}

CRITICAL: A pulled record that cannot be trusted is DROPPED, never patched
up with defaults. A price of 0 or a made-up date would silently corrupt
the user's history.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import ValidationError

from spendsync.models.expense import Expense, Product, normalize_category
from spendsync.models.identity import ServerId, is_server_id
from spendsync.models.timestamps import parse_iso_timestamp


class RecordConversionError(Exception):
    """A single pulled record could not be turned into an Expense."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


def _price_to_number(price: Decimal) -> Union[int, float]:
    """JSON number for a Decimal price; whole amounts stay integers."""
    if price == price.to_integral_value():
        return int(price)
    return float(price)


def to_wire_payload(expense: Expense) -> dict:
    """
    Serialize one local expense for the push batch.

    Returns:
        {id, local_id, product, price, category, timestamp}
    """
    identity = expense.identity
    if isinstance(identity, ServerId):
        wire_id, local_id = str(identity.id), None
    else:
        wire_id, local_id = None, identity.token

    return {
        "id": wire_id,
        "local_id": local_id,
        "product": expense.product.name,
        "price": _price_to_number(expense.price),
        "category": expense.category,
        "timestamp": expense.timestamp.isoformat(),
    }


def _wire_id(record: dict) -> str:
    raw = record.get("id")
    # bool is an int subclass; True is not a row id
    if isinstance(raw, bool) or raw is None:
        raise RecordConversionError("Record has no server id")
    if isinstance(raw, int):
        if raw < 0:
            raise RecordConversionError(f"Negative server id: {raw}", str(raw))
        return str(raw)
    if isinstance(raw, str) and is_server_id(raw.strip()):
        return raw.strip()
    raise RecordConversionError(f"Invalid server id: {raw!r}", str(raw))


def _wire_product_name(record: dict) -> str:
    raw: Any = record.get("productName")
    if raw is None:
        raw = record.get("product")
    if isinstance(raw, dict):
        raw = raw.get("name")
    if not isinstance(raw, str) or not raw.strip():
        raise RecordConversionError("Record has no product name")
    return raw.strip()


def _wire_price(record: dict) -> Decimal:
    raw = record.get("price")
    if raw is None or isinstance(raw, bool):
        raise RecordConversionError("Record has no price")
    try:
        price = Decimal(str(raw).strip())
    except InvalidOperation:
        raise RecordConversionError(f"Unparsable price: {raw!r}")
    if not price.is_finite():
        raise RecordConversionError(f"Non-finite price: {raw!r}")
    if price <= 0:
        raise RecordConversionError(f"Non-positive price: {raw!r}")
    return price


def from_wire_expense(record: Any) -> Expense:
    """
    Convert one server record into a local Expense.

    Raises:
        RecordConversionError: If the record is missing its id or product
            name, has a non-finite/non-positive price, or an unparsable
            timestamp
    """
    if not isinstance(record, dict):
        raise RecordConversionError(f"Record is not an object: {type(record).__name__}")

    expense_id = _wire_id(record)
    try:
        name = _wire_product_name(record)
        price = _wire_price(record)
        timestamp = parse_iso_timestamp(record.get("timestamp"))
        if timestamp is None:
            raise RecordConversionError(f"Unparsable timestamp: {record.get('timestamp')!r}")

        return Expense(
            id=expense_id,
            product=Product(name=name),
            price=price,
            category=normalize_category(record.get("category")),
            timestamp=timestamp,
        )
    except RecordConversionError as e:
        e.record_id = e.record_id or expense_id
        raise
    except ValidationError as e:
        raise RecordConversionError(f"Record failed validation: {e}", expense_id)
