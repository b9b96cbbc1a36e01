from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

Used for multi-file uploads (unit "file") and route computation (unit "day"),
so long uncached batches report incremental progress. In non-TTY environments
(CI, pipes) the bar is disabled to avoid ANSI control sequence spam.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """Check if TTY output is enabled."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress tracker using tqdm.

    Provides a single bar with a per-item label; a no-op when stdout is not a TTY.
    """

    def __init__(self, total: int, *, description: str = "Processing", unit: str = "file") -> None:
        self.total = total
        self.description = description
        self.current = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit=unit,
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start(self, label: str) -> None:
        """Show `label` next to the description while an item is processed."""
        self.current += 1
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({label})")

    def finish(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        """Close the progress bar."""
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
