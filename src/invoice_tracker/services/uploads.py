from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import UTC, datetime

from ..db.store import RecordStore
from ..errors import ParseError
from ..excel.reader import parse_spreadsheet
from ..models.config_models import SpreadsheetConfig
from ..models.error_record import PARSE_ERROR, ErrorRecord
from ..models.processing_result import UploadBatchResult
from ..models.upload import PendingDecision, Resolution, UploadOutcome, UploadState
from .identity import content_hash
from .progress import ProgressTracker
from .reconcile import ReconciliationEngine

"""Upload state machine driver.

ingest() moves one file from PARSED to DUPLICATE, STORED, FAILED or
CONFLICT_PENDING. A pending conflict carries a PendingDecision (the diff and
the parsed rows) and is finished later with resolve(). Parse failures stay
file-scoped; StoreError propagates to the caller.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "UploadHandler",
]


class UploadHandler:
    def __init__(self, store: RecordStore, spreadsheet: SpreadsheetConfig | None = None) -> None:
        self.store = store
        self.spreadsheet = spreadsheet or SpreadsheetConfig()
        self.engine = ReconciliationEngine(store)

    def ingest(self, filename: str, data: bytes) -> UploadOutcome:
        digest = content_hash(data)

        duplicate = self.store.find_by_hash(digest)
        if duplicate is not None:
            logger.info("duplicate file=%s (already stored as %s)", filename, duplicate.filename)
            return UploadOutcome(
                filename=filename,
                state=UploadState.DUPLICATE,
                message=f"identical content already uploaded as {duplicate.filename}",
                file_id=duplicate.id,
            )

        try:
            parsed = parse_spreadsheet(data, filename=filename, spreadsheet=self.spreadsheet)
        except ParseError as e:
            logger.error("parse failed file=%s: %s", filename, e)
            return UploadOutcome(filename=filename, state=UploadState.FAILED, message="parse failed", error=str(e))

        existing = self.store.find_by_filename(filename)
        if existing is None:
            file_id = self.store.save(filename, digest, parsed)
            return UploadOutcome(
                filename=filename,
                state=UploadState.STORED,
                message=f"stored {len(parsed.rows)} rows",
                file_id=file_id,
                stored_rows=len(parsed.rows),
            )

        diff = self.engine.diff(existing.id, parsed)
        logger.info(
            "conflict file=%s added=%d removed=%d modified=%d unchanged=%d",
            filename,
            len(diff.added),
            len(diff.removed),
            len(diff.modified),
            diff.unchanged_count,
        )
        return UploadOutcome(
            filename=filename,
            state=UploadState.CONFLICT_PENDING,
            message="a different version of this file is already stored",
            file_id=existing.id,
            pending=PendingDecision(
                filename=filename,
                content_hash=digest,
                existing_file_id=existing.id,
                diff=diff,
                parsed=parsed,
            ),
        )

    def resolve(self, pending: PendingDecision, resolution: Resolution) -> UploadOutcome:
        """Finish a CONFLICT_PENDING upload."""
        if resolution is Resolution.CANCEL:
            logger.info("upload cancelled file=%s", pending.filename)
            return UploadOutcome(
                filename=pending.filename,
                state=UploadState.RESOLVED,
                message="cancelled; stored data left unchanged",
                file_id=pending.existing_file_id,
                resolution=resolution,
            )

        if resolution is Resolution.REPLACE:
            file_id = self.store.replace(
                pending.existing_file_id, pending.filename, pending.content_hash, pending.parsed
            )
            stored = len(pending.parsed.rows)
            message = f"replaced with {stored} rows"
        else:
            file_id = self.store.merge(
                pending.existing_file_id, pending.filename, pending.content_hash, pending.parsed
            )
            stored = len(self.store.file_rows(file_id))
            message = f"merged; {stored} rows stored"

        return UploadOutcome(
            filename=pending.filename,
            state=UploadState.STORED,
            message=message,
            file_id=file_id,
            stored_rows=stored,
            resolution=resolution,
        )

    def ingest_many(self, files: Iterable[tuple[str, bytes]]) -> UploadBatchResult:
        """Ingest each file independently; one outcome per file, in order."""
        items = list(files)
        start_time = datetime.now(UTC)
        started = time.time()
        outcomes: list[UploadOutcome] = []
        errors: list[ErrorRecord] = []

        with ProgressTracker(len(items), description="Uploading", unit="file") as progress:
            for filename, data in items:
                progress.start(filename)
                outcome = self.ingest(filename, data)
                outcomes.append(outcome)
                if outcome.state is UploadState.FAILED:
                    errors.append(ErrorRecord.create(filename, -1, PARSE_ERROR, outcome.error or outcome.message))
                progress.finish()

        return UploadBatchResult(
            outcomes=outcomes,
            start_time=start_time,
            end_time=datetime.now(UTC),
            elapsed_seconds=time.time() - started,
            errors=errors,
        )
