from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime

from ..excel.dates import parse_date_value
from ..models.row_data import InvoiceRow

"""Content identity: file digests, column roles and the reconciliation row key.

Row identity is (lesson date, client name) rather than full-row equality so that
a corrected amount or address for the same lesson shows up as "modified" instead
of one removal plus one addition.

Known limitation: two lessons for the same client on the same date share a key;
only the last one seen under that key takes part in diffing and merging.
"""

__all__ = [
    "KEY_SEPARATOR",
    "content_hash",
    "is_date_column",
    "find_date_column",
    "find_client_column",
    "row_key",
]

KEY_SEPARATOR = "|"


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the raw uploaded bytes."""
    return hashlib.sha256(data).hexdigest()


def is_date_column(name: str) -> bool:
    lower = name.lower()
    return "lesson date" in lower or ("date" in lower and "time" not in lower)


def find_date_column(columns: Iterable[str]) -> str | None:
    cols = list(columns)
    for c in cols:
        if "lesson date" in c.lower():
            return c
    return next((c for c in cols if is_date_column(c)), None)


def find_client_column(columns: Iterable[str]) -> str | None:
    cols = list(columns)
    for c in cols:
        if "client name" in c.lower():
            return c
    return next((c for c in cols if "client" in c.lower()), None)


def _normalized_date(value: object) -> str:
    if value is None:
        return ""
    parsed = parse_date_value(value)
    if isinstance(parsed, datetime):
        return parsed.isoformat()
    return str(parsed) if parsed is not None else ""


def row_key(row: InvoiceRow) -> str:
    """Canonical reconciliation key: ISO date + separator + client name."""
    date_col = find_date_column(row.values.keys())
    client_col = find_client_column(row.values.keys())
    date_part = _normalized_date(row.get(date_col))
    client = row.get(client_col)
    client_part = str(client).strip() if client is not None else ""
    return f"{date_part}{KEY_SEPARATOR}{client_part}"
