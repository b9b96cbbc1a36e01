from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .row_data import InvoiceRow

"""ParsedFile / StoredFile / InvoiceLedger domain models.

ParsedFile is the output of the spreadsheet ingestor; StoredFile is the durable
counterpart (one row of the uploaded_files table). InvoiceLedger is the aggregate
view across every stored file.
"""

__all__ = [
    "ParsedFile",
    "StoredFile",
    "InvoiceLedger",
    "KilometerUpdate",
]


@dataclass(frozen=True)
class ParsedFile:
    """Rows + ordered column union + declared total of one (or several combined) spreadsheets."""
    rows: list[InvoiceRow] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)  # first-seen order
    total_amount: float = 0.0  # 宣言済み合計 (行の合計ではない)
    filename: str | None = None

    def to_json_dict(self) -> dict[str, Any]:
        """JSON-serialisable form; datetimes become ISO-8601 strings."""
        return {
            "filename": self.filename,
            "columns": list(self.columns),
            "total_amount": self.total_amount,
            "rows": [
                {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in row.values.items()}
                for row in self.rows
            ],
        }


@dataclass(frozen=True)
class StoredFile:
    id: int
    filename: str
    content_hash: str
    uploaded_at: str  # ISO8601 UTC
    total_amount: float = 0.0


@dataclass(frozen=True)
class InvoiceLedger:
    """Aggregate across all stored files (columns = union, total = sum)."""
    files: list[StoredFile]
    rows: list[InvoiceRow]
    columns: list[str]
    total_amount: float

    @property
    def total_kilometers(self) -> float:
        return sum(r.kilometers or 0.0 for r in self.rows)


@dataclass(frozen=True)
class KilometerUpdate:
    row_id: int
    kilometers: float
