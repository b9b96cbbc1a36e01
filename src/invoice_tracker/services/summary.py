from __future__ import annotations

from ..models.processing_result import RouteResult, UploadBatchResult
from ..models.upload import UploadState

"""SUMMARY line rendering.

The returned strings carry no "SUMMARY " prefix; log_summary() adds the label.

    files=3 stored=1 duplicate=1 conflict=0 failed=1 rows=12 elapsed_sec=0.84
    days=4 rows=12 legs=9 km=81.4 warnings=0 elapsed_sec=6.2
"""

__all__ = [
    "format_seconds",
    "render_upload_summary",
    "render_route_summary",
]


def format_seconds(value: float) -> str:
    """0 -> "0", integral -> "2", tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}".rstrip("0").rstrip(".")


def render_upload_summary(result: UploadBatchResult) -> str:
    return (
        f"files={len(result.outcomes)} "
        f"stored={result.count(UploadState.STORED)} "
        f"duplicate={result.count(UploadState.DUPLICATE)} "
        f"conflict={result.count(UploadState.CONFLICT_PENDING) + result.count(UploadState.RESOLVED)} "
        f"failed={result.failed_files} "
        f"rows={result.stored_rows} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)}"
    )


def render_route_summary(result: RouteResult) -> str:
    return (
        f"days={result.day_count} "
        f"rows={len(result.rows)} "
        f"legs={len(result.legs)} "
        f"km={result.total_kilometers:.1f} "
        f"warnings={len(result.warnings)} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)}"
    )
