"""
CSV Import / Export

Export columns (newest first):

    Producto, Precio, Categoria, Timestamp (ISO 8601)

Import accepts the same header set ("Timestamp" alone is also fine) and
additionally tolerates dd/MM/yyyy HH:mm[:ss] timestamps, normalizing them
to datetimes on ingest.

IMPORTANT: A bad row never aborts the import. Rows with a missing
product, a non-positive or unparsable price, or an unparsable timestamp
are skipped and reported with their line number.
"""

import csv
import io
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import ValidationError

from spendsync.models.expense import DEFAULT_CATEGORY, Expense, Product, sort_newest_first
from spendsync.models.identity import new_local_id
from spendsync.models.sync import ImportResult
from spendsync.models.timestamps import parse_flexible_timestamp


PRODUCT_HEADER = "Producto"
PRICE_HEADER = "Precio"
CATEGORY_HEADER = "Categoria"
TIMESTAMP_HEADER = "Timestamp (ISO 8601)"

EXPORT_HEADERS = [PRODUCT_HEADER, PRICE_HEADER, CATEGORY_HEADER, TIMESTAMP_HEADER]
_TIMESTAMP_ALIASES = (TIMESTAMP_HEADER, "Timestamp")


class CsvFormatError(ValueError):
    """The file cannot be imported at all (e.g. a required column is missing)."""
    pass


def _clean_price(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None:
        return None
    text = raw.strip().replace("$", "").replace("COP", "").replace(" ", "")
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def export_expenses_csv(expenses: list[Expense]) -> str:
    """
    Render expenses as CSV text.

    The default category is written as an empty cell so a re-import maps
    it back to the sentinel instead of creating a category literally named
    after the i18n key.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for expense in sort_newest_first(expenses):
        writer.writerow([
            expense.product.name,
            str(expense.price),
            "" if expense.category == DEFAULT_CATEGORY else expense.category,
            expense.timestamp.isoformat(),
        ])
    return buffer.getvalue()


def import_expenses_csv(text: str) -> ImportResult:
    """
    Parse CSV text into new local expenses.

    Returns:
        ImportResult with the valid expenses (client ids assigned) and
        the skipped row count/reasons

    Raises:
        CsvFormatError: If the header lacks a required column
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    fieldnames = [name.strip() for name in (reader.fieldnames or [])]
    reader.fieldnames = fieldnames

    timestamp_header = next((h for h in _TIMESTAMP_ALIASES if h in fieldnames), None)
    missing = [h for h in (PRODUCT_HEADER, PRICE_HEADER) if h not in fieldnames]
    if timestamp_header is None:
        missing.append(TIMESTAMP_HEADER)
    if missing:
        raise CsvFormatError(f"CSV is missing required column(s): {', '.join(missing)}")

    expenses: list[Expense] = []
    skipped: list[str] = []

    for row in reader:
        line = reader.line_num
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue  # blank line

        product = (row.get(PRODUCT_HEADER) or "").strip()
        if not product:
            skipped.append(f"line {line}: missing product")
            continue

        price = _clean_price(row.get(PRICE_HEADER))
        if price is None:
            skipped.append(f"line {line}: invalid price {row.get(PRICE_HEADER)!r}")
            continue

        timestamp = parse_flexible_timestamp(row.get(timestamp_header))
        if timestamp is None:
            skipped.append(f"line {line}: invalid timestamp {row.get(timestamp_header)!r}")
            continue

        try:
            expenses.append(Expense(
                id=new_local_id(),
                product=Product(name=product),
                price=price,
                category=row.get(CATEGORY_HEADER),
                timestamp=timestamp,
            ))
        except ValidationError as e:
            skipped.append(f"line {line}: {e.errors()[0]['msg']}")

    return ImportResult(
        expenses=sort_newest_first(expenses),
        skipped_count=len(skipped),
        skipped_reasons=skipped,
    )
