from __future__ import annotations

from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from ..models.parsed_file import ParsedFile
from ..models.row_data import InvoiceRow
from ..models.upload import DiffResult, RowChange
from .identity import row_key

if TYPE_CHECKING:  # pragma: no cover
    from ..db.store import RecordStore

"""Reconciliation between a stored file and a re-uploaded version of it.

Rows are matched by row_key (lesson date + client name). For matched rows every
non-null attribute is compared; dates compare by instant, not by string form.
"""

__all__ = [
    "rows_equal",
    "diff_rows",
    "plan_merge",
    "ReconciliationEngine",
]


def _comparable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def rows_equal(a: InvoiceRow, b: InvoiceRow) -> bool:
    """Compare non-null attributes; differing non-null key sets are a difference."""
    left = {k: v for k, v in a.values.items() if v is not None}
    right = {k: v for k, v in b.values.items() if v is not None}
    if len(left) != len(right):
        return False
    for key, v1 in left.items():
        if key not in right:
            return False
        if _comparable(v1) != _comparable(right[key]):
            return False
    return True


def _keyed(rows: list[InvoiceRow]) -> dict[str, InvoiceRow]:
    # 同一キーは後勝ち (same-day same-client の既知の制限)
    return {row_key(r): r for r in rows}


def diff_rows(existing: list[InvoiceRow], incoming: list[InvoiceRow]) -> DiffResult:
    old = _keyed(existing)
    new = _keyed(incoming)

    added = [row for key, row in new.items() if key not in old]
    removed = [row for key, row in old.items() if key not in new]
    modified: list[RowChange] = []
    unchanged = 0
    for key, new_row in new.items():
        old_row = old.get(key)
        if old_row is None:
            continue
        if rows_equal(old_row, new_row):
            unchanged += 1
        else:
            modified.append(RowChange(old=old_row, new=new_row))
    return DiffResult(added=added, removed=removed, modified=modified, unchanged_count=unchanged)


def plan_merge(
    existing_rows: list[InvoiceRow],
    existing_columns: list[str],
    existing_total: float,
    incoming: ParsedFile,
) -> ParsedFile:
    """Existing rows verbatim ++ incoming rows with unseen keys; columns unioned, totals summed."""
    seen = {row_key(r) for r in existing_rows}
    new_only = [r for r in incoming.rows if row_key(r) not in seen]

    columns = list(existing_columns)
    for col in incoming.columns:
        if col not in columns:
            columns.append(col)

    return ParsedFile(
        rows=list(existing_rows) + new_only,
        columns=columns,
        total_amount=(existing_total or 0.0) + (incoming.total_amount or 0.0),
        filename=incoming.filename,
    )


class ReconciliationEngine:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def diff(self, existing_file_id: int, parsed: ParsedFile) -> DiffResult:
        return diff_rows(self.store.file_rows(existing_file_id), parsed.rows)
