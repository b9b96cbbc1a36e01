from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .error_record import ErrorRecord
from .row_data import InvoiceRow
from .upload import UploadOutcome, UploadState

"""Processing result models for upload batches and route computation runs.

Both results carry timing (for the SUMMARY line) and the non-fatal ErrorRecords
collected along the way.
"""

__all__ = [
    "UploadBatchResult",
    "TripLeg",
    "RouteResult",
]


@dataclass(frozen=True)
class UploadBatchResult:
    """Aggregated outcome of one multi-file upload."""
    outcomes: list[UploadOutcome]
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    errors: list[ErrorRecord] = field(default_factory=list)

    def count(self, state: UploadState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)

    @property
    def stored_rows(self) -> int:
        return sum(o.stored_rows for o in self.outcomes)

    @property
    def failed_files(self) -> int:
        return self.count(UploadState.FAILED)


@dataclass(frozen=True)
class TripLeg:
    """One point-to-point contribution attributed to a row."""
    origin: str
    destination: str
    kilometers: float
    row_index: int  # index into RouteResult.rows


@dataclass(frozen=True)
class RouteResult:
    """Rows (input order) with kilometers attached, plus the legs and warnings."""
    rows: list[InvoiceRow]
    legs: list[TripLeg] = field(default_factory=list)
    warnings: list[ErrorRecord] = field(default_factory=list)
    day_count: int = 0
    elapsed_seconds: float = 0.0

    @property
    def total_kilometers(self) -> float:
        return round(sum(r.kilometers or 0.0 for r in self.rows), 1)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)
