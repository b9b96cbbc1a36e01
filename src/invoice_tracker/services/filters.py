from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from ..excel.dates import to_calendar_date
from ..models.row_data import InvoiceRow
from .identity import find_client_column, find_date_column

"""Row filtering / sorting for listing and export."""

__all__ = [
    "KILOMETERS_COLUMN",
    "FilterState",
    "apply_filters",
    "sort_rows",
    "distinct_clients",
    "distinct_dates",
]

KILOMETERS_COLUMN = "Kilometers"


@dataclass(frozen=True)
class FilterState:
    lesson_date: date | None = None
    client_name: str | None = None

    @property
    def active(self) -> bool:
        return self.lesson_date is not None or self.client_name is not None


def _lesson_date(row: InvoiceRow) -> date | None:
    return to_calendar_date(row.get(find_date_column(row.values.keys())))


def _client(row: InvoiceRow) -> str | None:
    value = row.get(find_client_column(row.values.keys()))
    return str(value).strip() if value is not None else None


def apply_filters(rows: Iterable[InvoiceRow], state: FilterState) -> list[InvoiceRow]:
    """Calendar-date match (time ignored) and exact client-name match."""
    out: list[InvoiceRow] = []
    for row in rows:
        if state.lesson_date is not None and _lesson_date(row) != state.lesson_date:
            continue
        if state.client_name is not None and _client(row) != state.client_name.strip():
            continue
        out.append(row)
    return out


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, datetime):
        return (0, value)
    if isinstance(value, date):
        return (0, datetime(value.year, value.month, value.day))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value).lower())


def sort_rows(rows: Iterable[InvoiceRow], column: str, descending: bool = False) -> list[InvoiceRow]:
    """Stable sort by one column; None / empty values always go last."""
    present: list[tuple[tuple[int, Any], InvoiceRow]] = []
    missing: list[InvoiceRow] = []
    for row in rows:
        value = row.kilometers if column == KILOMETERS_COLUMN else row.get(column)
        if value is None or value == "":
            missing.append(row)
        else:
            present.append((_sort_key(value), row))
    present.sort(key=lambda item: item[0], reverse=descending)
    return [row for _, row in present] + missing


def distinct_clients(rows: Iterable[InvoiceRow]) -> list[str]:
    return sorted({name for name in (_client(r) for r in rows) if name})


def distinct_dates(rows: Iterable[InvoiceRow]) -> list[date]:
    return sorted({d for d in (_lesson_date(r) for r in rows) if d is not None})
