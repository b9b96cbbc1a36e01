from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

"""Date and currency cell policy for invoice spreadsheets.

- Numbers are Excel serial dates: days since 1899-12-30 (the common Excel
  convention that treats 1900 as a leap year).
- D/M/YYYY and D-M-YYYY strings are ALWAYS day-first; never month-first.
- YYYY-M-D and YYYY/M/D strings are year-first (ISO order).
- A string that looks like a date but fails calendar validation is returned
  unchanged (no coercion, no silently wrong date).
"""

__all__ = [
    "EXCEL_EPOCH",
    "excel_serial_to_datetime",
    "looks_like_date",
    "parse_date_value",
    "to_calendar_date",
    "restore_iso_datetime",
    "parse_currency",
]

EXCEL_EPOCH = datetime(1899, 12, 30)
SERIAL_MIN = 1
SERIAL_MAX = 100000

_DAY_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not pd.isna(value)


def excel_serial_to_datetime(serial: float) -> datetime:
    return EXCEL_EPOCH + timedelta(days=float(serial))


def looks_like_date(value: Any) -> bool:
    """Gate used on the first column: is this cell a "real data row" marker?"""
    if value is None:
        return False
    if isinstance(value, (datetime, date)):
        return not pd.isna(value)
    if _is_number(value):
        return SERIAL_MIN <= value <= SERIAL_MAX
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return False
        return bool(_DAY_FIRST.match(text) or _YEAR_FIRST.match(text) or _ISO_DATETIME.match(text))
    return False


def _build(year: int, month: int, day: int) -> datetime | None:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None  # 例: 31/04/2024 (30日の月)


def parse_date_value(value: Any) -> datetime | str | None:
    """Convert a date-bearing cell into a datetime, keeping unparseable text verbatim."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if _is_number(value):
        return excel_serial_to_datetime(value)
    if isinstance(value, float):  # NaN
        return None
    text = str(value).strip()
    if not text:
        return None
    m = _DAY_FIRST.match(text)
    if m:
        day, month, year = (int(g) for g in m.groups())
        return _build(year, month, day) or text
    m = _YEAR_FIRST.match(text)
    if m:
        year, month, day = (int(g) for g in m.groups())
        return _build(year, month, day) or text
    if _ISO_DATETIME.match(text):
        restored = restore_iso_datetime(text)
        if isinstance(restored, datetime):
            return restored
    return text


def restore_iso_datetime(text: str) -> datetime | str:
    """Inverse of datetime.isoformat() used when loading persisted rows."""
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


def to_calendar_date(value: Any) -> date | None:
    """Calendar date of a lesson-date value (time-of-day ignored), None if not a date."""
    parsed = parse_date_value(value)
    if isinstance(parsed, datetime):
        return parsed.date()
    return None


def parse_currency(value: Any) -> float:
    """Strip $, commas and whitespace then float-parse; 0.0 when absent or unparseable."""
    if value is None:
        return 0.0
    if _is_number(value):
        return float(value)
    text = re.sub(r"[$,\s]", "", str(value))
    if not text:
        return 0.0
    try:
        result = float(text)
    except ValueError:
        return 0.0
    return 0.0 if pd.isna(result) else result
