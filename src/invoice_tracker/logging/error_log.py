from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Per-run error log for the tracker CLI.

Upload and routes commands hand their ErrorRecords to one shared
buffer; `main()` flushes it once in its `finally` block. The file is named
after the moment the run started (`errors-YYYYMMDD-HHMMSS.log`, UTC) and only
exists when at least one record was written.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

DEFAULT_LOGS_DIR = Path("./logs")
RUN_STAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """Collects one CLI run's ErrorRecords and writes them as JSON Lines."""

    def __init__(self, logs_dir: Path | str | None = None, started_at: datetime | None = None) -> None:
        self.logs_dir = Path(logs_dir) if logs_dir is not None else DEFAULT_LOGS_DIR
        self.started_at = started_at or datetime.now(UTC)
        self._pending: list[ErrorRecord] = []

    @property
    def file_path(self) -> Path:
        return self.logs_dir / f"errors-{self.started_at.strftime(RUN_STAMP_FMT)}.log"

    @property
    def pending(self) -> tuple[ErrorRecord, ...]:
        return tuple(self._pending)

    def append(self, record: ErrorRecord) -> None:
        self._pending.append(record)

    def extend(self, records: list[ErrorRecord]) -> None:
        self._pending.extend(records)

    def __len__(self) -> int:
        return len(self._pending)

    def flush(self) -> Path | None:
        """Append pending records to the run's file.

        Returns:
            the file written, or None when nothing was pending (no directory or
            file is created in that case)
        """
        if not self._pending:
            return None
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        target = self.file_path
        lines = "".join(r.to_json_line() + "\n" for r in self._pending)
        with target.open("a", encoding="utf-8") as f:
            f.write(lines)
        self._pending.clear()
        return target
