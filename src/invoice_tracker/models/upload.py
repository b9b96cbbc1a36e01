from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .parsed_file import ParsedFile
from .row_data import InvoiceRow

"""Upload lifecycle models: reconciliation diff and the conflict state machine.

State transitions for one uploaded file:

    PARSED -> DUPLICATE                      (same content hash already stored)
    PARSED -> STORED                         (new filename)
    PARSED -> CONFLICT_PENDING               (same filename, different content)
    CONFLICT_PENDING -> STORED               (resolution REPLACE | MERGE)
    CONFLICT_PENDING -> RESOLVED             (resolution CANCEL, store untouched)
    PARSED -> FAILED                         (parse error, siblings unaffected)

The CONFLICT_PENDING transition hands back a PendingDecision instead of blocking;
whatever drives the UI (CLI prompt, web form) answers it later via
UploadHandler.resolve().
"""

__all__ = [
    "RowChange",
    "DiffResult",
    "UploadState",
    "Resolution",
    "PendingDecision",
    "UploadOutcome",
]


@dataclass(frozen=True)
class RowChange:
    old: InvoiceRow
    new: InvoiceRow


@dataclass(frozen=True)
class DiffResult:
    added: list[InvoiceRow] = field(default_factory=list)
    removed: list[InvoiceRow] = field(default_factory=list)
    modified: list[RowChange] = field(default_factory=list)
    unchanged_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class UploadState(Enum):
    PARSED = "parsed"
    DUPLICATE = "duplicate"
    CONFLICT_PENDING = "conflict_pending"
    RESOLVED = "resolved"
    STORED = "stored"
    FAILED = "failed"


class Resolution(Enum):
    REPLACE = "replace"
    MERGE = "merge"
    CANCEL = "cancel"


@dataclass(frozen=True)
class PendingDecision:
    """Everything needed to finish a same-name conflict once the user decides."""
    filename: str
    content_hash: str
    existing_file_id: int
    diff: DiffResult
    parsed: ParsedFile


@dataclass(frozen=True)
class UploadOutcome:
    filename: str
    state: UploadState
    message: str = ""
    file_id: int | None = None
    stored_rows: int = 0
    pending: PendingDecision | None = None
    resolution: Resolution | None = None
    error: str | None = None

    @property
    def diff(self) -> DiffResult | None:
        return self.pending.diff if self.pending else None
