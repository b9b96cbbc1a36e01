"""Domain models for the lesson invoice tracker.

This package contains the domain model classes used throughout the application:
configuration, invoice rows / files, upload lifecycle and processing results.
"""

from .config_models import DatabaseConfig, RoutingConfig, SpreadsheetConfig, TrackerConfig
from .error_record import ErrorRecord
from .parsed_file import InvoiceLedger, KilometerUpdate, ParsedFile, StoredFile
from .processing_result import RouteResult, TripLeg, UploadBatchResult
from .row_data import InvoiceRow
from .upload import (
    DiffResult,
    PendingDecision,
    Resolution,
    RowChange,
    UploadOutcome,
    UploadState,
)

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "RoutingConfig",
    "SpreadsheetConfig",
    "TrackerConfig",
    # Invoice data
    "InvoiceRow",
    "ParsedFile",
    "StoredFile",
    "InvoiceLedger",
    "KilometerUpdate",
    # Upload lifecycle
    "DiffResult",
    "RowChange",
    "UploadState",
    "Resolution",
    "PendingDecision",
    "UploadOutcome",
    # Results
    "ErrorRecord",
    "UploadBatchResult",
    "RouteResult",
    "TripLeg",
]
