from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..errors import ParseError
from ..models.config_models import SpreadsheetConfig
from ..models.parsed_file import ParsedFile
from ..models.row_data import InvoiceRow
from ..services.identity import is_date_column
from .dates import looks_like_date, parse_currency, parse_date_value

"""Invoice spreadsheet reader.

Layout of the source workbooks (first sheet only):
- a title block, with the declared total amount in a fixed cell (default J2)
- a header row somewhere in rows 5-15, usually row 10, containing
  "Lesson Date" and/or "Client Name"
- data rows below it; column A holds the lesson date on every real data row,
  blank separators and totals rows do not
"""

logger = logging.getLogger(__name__)

__all__ = [
    "SheetHeaderError",
    "HEADER_SEARCH_TERMS",
    "read_workbook",
    "find_header_row",
    "normalize_invoice_sheet",
    "parse_spreadsheet",
    "parse_spreadsheet_file",
    "combine",
]

HEADER_SEARCH_TERMS = ("lesson date", "client name")
PREFERRED_HEADER_INDEX = 9  # row 10
HEADER_SCAN_RANGE = range(4, 15)  # rows 5-15


class SheetHeaderError(ParseError):
    """Raised when no header row is found in the scanned range."""


def _to_python(value: Any) -> Any:
    """NaN/NaT -> None, numpy scalars -> builtins, Timestamp -> datetime."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, (float, datetime, date)) and pd.isna(value):
        return None
    if value is pd.NaT:
        return None
    return value


def read_workbook(data: bytes) -> pd.DataFrame:
    """Read the first worksheet as a raw, header-less DataFrame."""
    try:
        # ヘッダなしで生読み (後でヘッダ行を自動検出)
        return pd.read_excel(io.BytesIO(data), sheet_name=0, header=None)
    except Exception as e:
        raise ParseError(f"unreadable spreadsheet: {e}") from e


def _row_text(cells: Iterable[Any]) -> str:
    return " ".join(str(c).strip().lower() for c in cells if _to_python(c) is not None)


def _is_header(cells: Iterable[Any]) -> bool:
    text = _row_text(cells)
    return any(term in text for term in HEADER_SEARCH_TERMS)


def find_header_row(rows: list[list[Any]]) -> int:
    """Return the 0-based header row index; row 10 is checked first, then rows 5-15."""
    if len(rows) > PREFERRED_HEADER_INDEX and _is_header(rows[PREFERRED_HEADER_INDEX]):
        return PREFERRED_HEADER_INDEX
    for idx in HEADER_SCAN_RANGE:
        if idx >= len(rows):
            break
        if _is_header(rows[idx]):
            return idx
    raise SheetHeaderError(
        'Could not find header row with "Lesson Date" or "Client Name" in rows 5-15'
    )


def _is_totals_row(cells: list[Any], header: list[tuple[int, str]]) -> bool:
    # 先頭の見出し列に "Total" を含む行は集計行
    if not header or header[0][0] >= len(cells):
        return False
    lead = _to_python(cells[header[0][0]])
    return lead is not None and "total" in str(lead).lower()


def _declared_total(rows: list[list[Any]], cfg: SpreadsheetConfig) -> float:
    r, c = cfg.total_amount_row, cfg.total_amount_column
    if r >= len(rows) or c >= len(rows[r]):
        return 0.0
    return parse_currency(_to_python(rows[r][c]))


def normalize_invoice_sheet(
    df: pd.DataFrame,
    filename: str | None = None,
    spreadsheet: SpreadsheetConfig | None = None,
) -> ParsedFile:
    """Turn a raw DataFrame into a ParsedFile.

    Steps:
    1. Locate the header row and keep its non-empty cells (by physical position)
    2. Keep a data row only if column A looks like a date and is not a totals row
    3. Convert date-bearing columns through the day-first date policy
    4. Drop rows with no non-empty value
    5. Read the declared total amount from the fixed cell
    """
    cfg = spreadsheet or SpreadsheetConfig()
    rows: list[list[Any]] = df.astype(object).values.tolist()
    header_idx = find_header_row(rows)

    header: list[tuple[int, str]] = []
    for pos, cell in enumerate(rows[header_idx]):
        cell = _to_python(cell)
        if cell is None:
            continue
        name = str(cell).strip()
        if name:
            header.append((pos, name))
    logger.debug("file=%s header_row=%d columns=%s", filename, header_idx + 1, [h for _, h in header])

    records: list[InvoiceRow] = []
    for idx in range(header_idx + 1, len(rows)):
        cells = rows[idx]
        if _is_totals_row(cells, header):
            logger.debug("file=%s row=%d skipped totals row", filename, idx + 1)
            continue
        first = _to_python(cells[0]) if cells else None
        if not looks_like_date(first):
            continue

        values: dict[str, Any] = {}
        for pos, name in header:
            value = _to_python(cells[pos]) if pos < len(cells) else None
            if value is not None and is_date_column(name):
                value = parse_date_value(value)
            values[name] = value

        has_data = any(v is not None and v != "" for v in values.values())
        if not has_data:
            continue
        records.append(InvoiceRow(values=values, source_row=idx + 1))

    logger.debug("file=%s parsed_rows=%d", filename, len(records))
    return ParsedFile(
        rows=records,
        columns=[name for _, name in header],
        total_amount=_declared_total(rows, cfg),
        filename=filename,
    )


def parse_spreadsheet(
    data: bytes, filename: str | None = None, spreadsheet: SpreadsheetConfig | None = None
) -> ParsedFile:
    """bytes -> ParsedFile; raises ParseError when unreadable or headerless."""
    df = read_workbook(data)
    return normalize_invoice_sheet(df, filename=filename, spreadsheet=spreadsheet)


def parse_spreadsheet_file(path: Path, spreadsheet: SpreadsheetConfig | None = None) -> ParsedFile:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ParseError(f"cannot read {path}: {e}") from e
    return parse_spreadsheet(data, filename=path.name, spreadsheet=spreadsheet)


def combine(parsed_files: list[ParsedFile]) -> ParsedFile:
    """Union of columns (first-seen order); rows re-projected; totals summed."""
    if not parsed_files:
        return ParsedFile()
    columns: list[str] = []
    for pf in parsed_files:
        for col in pf.columns:
            if col not in columns:
                columns.append(col)
    rows = [row.project(columns) for pf in parsed_files for row in pf.rows]
    total = sum(pf.total_amount for pf in parsed_files)
    return ParsedFile(rows=rows, columns=columns, total_amount=total, filename=None)
