from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for non-fatal warning / error logging.

ErrorRecord supports row=-1 as a sentinel value for file-level (or run-level)
records where no specific row applies. Records are serialised as JSON Lines with
a fixed key set (see contracts in tests/contract).
"""

__all__ = [
    "ErrorRecord",
    "PARSE_ERROR",
    "CONFIG_WARNING",
    "MISSING_CLIENT_ADDRESS",
    "GEOCODE_ERROR",
    "ROUTE_ERROR",
    "RATE_LIMIT_EXCEEDED",
    "PROVIDER_UNAVAILABLE",
    "STORE_ERROR",
]

PARSE_ERROR = "PARSE_ERROR"
CONFIG_WARNING = "CONFIG_WARNING"
MISSING_CLIENT_ADDRESS = "MISSING_CLIENT_ADDRESS"
GEOCODE_ERROR = "GEOCODE_ERROR"
ROUTE_ERROR = "ROUTE_ERROR"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
STORE_ERROR = "STORE_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Spreadsheet filename, or a run label such as "<ROUTES>"
        row: Row number / index. Use -1 for file-level records
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human readable description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int  # 行番号。不明な場合 -1 許容
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)
