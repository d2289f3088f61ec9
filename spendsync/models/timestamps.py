"""
Timestamp parsing shared by the wire converter and the CSV importer.
"""

from datetime import datetime
from typing import Any, Optional


# Day-first formats accepted from spreadsheets edited by hand
DAY_FIRST_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
)


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp, or return None.

    Accepts datetime objects as-is, a trailing 'Z' for UTC and the
    'YYYY-MM-DD HH:MM:SS' form SQL backends tend to emit.
    """
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_flexible_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 first, then dd/MM/yyyy HH:mm[:ss]."""
    parsed = parse_iso_timestamp(value)
    if parsed is not None or not isinstance(value, str):
        return parsed
    for fmt in DAY_FIRST_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    return None
