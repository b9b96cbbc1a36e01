from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

"""InvoiceRow model for the lesson invoice tracker.

An InvoiceRow is one invoice line read from a spreadsheet (or loaded back from the
store). Its attributes form an open, ordered mapping because column sets differ
between files; the two privileged attributes (lesson date / client name) are
located lazily by header text, see services.identity.
"""

__all__ = [
    "InvoiceRow",
]


@dataclass(frozen=True)
class InvoiceRow:
    """Logical representation of a single invoice line.

    values:      column name -> str | int | float | datetime | None
    row_id:      persisted identifier, set once the row is stored
    kilometers:  computed route distance, None until computed
    source_row:  1-based spreadsheet row number (parse time only)
    """
    values: dict[str, Any] = field(default_factory=dict)
    row_id: int | None = None
    kilometers: float | None = None
    source_row: int | None = None

    def get(self, column: str | None, default: Any = None) -> Any:
        if column is None:
            return default
        return self.values.get(column, default)

    @property
    def has_stored_distance(self) -> bool:
        """True when a positive kilometers value is already attached."""
        return self.kilometers is not None and self.kilometers > 0

    def with_kilometers(self, kilometers: float | None) -> InvoiceRow:
        return replace(self, kilometers=kilometers)

    def project(self, columns: list[str]) -> InvoiceRow:
        """Re-project onto a column union; missing attributes become None."""
        return replace(self, values={c: self.values.get(c) for c in columns})
