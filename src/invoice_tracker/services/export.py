from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import InvoiceRow
from .filters import KILOMETERS_COLUMN

"""Spreadsheet export of the displayed rows (plus Kilometers)."""

logger = logging.getLogger(__name__)

__all__ = [
    "SHEET_NAME",
    "format_day_first",
    "rows_to_frame",
    "export_rows",
]

SHEET_NAME = "Invoices"


def format_day_first(value: date) -> str:
    """D/M/YYYY without zero padding (same convention as the source sheets)."""
    return f"{value.day}/{value.month}/{value.year}"


def _cell(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return format_day_first(value)
    return value


def rows_to_frame(rows: Iterable[InvoiceRow], columns: list[str]) -> pd.DataFrame:
    records = []
    for row in rows:
        record = {col: _cell(row.get(col)) for col in columns if col != KILOMETERS_COLUMN}
        record[KILOMETERS_COLUMN] = row.kilometers or 0
        records.append(record)
    out_columns = [c for c in columns if c != KILOMETERS_COLUMN] + [KILOMETERS_COLUMN]
    return pd.DataFrame.from_records(records, columns=out_columns)


def export_rows(rows: Iterable[InvoiceRow], columns: list[str], path: Path) -> Path:
    df = rows_to_frame(rows, columns)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
    logger.info("exported rows=%d to %s", len(df), path)
    return path
