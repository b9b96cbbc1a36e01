from __future__ import annotations

import logging
import sys
from typing import TextIO

"""Labeled console logging for the tracker CLI.

Every line on stdout starts with one of INFO|WARN|ERROR|SUMMARY (DEBUG with
--debug). Library modules only call logging.getLogger(__name__); their records
propagate into the "invoice_tracker" logger configured here, so importing the
package never touches the root logger.
"""

__all__ = [
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
    "setup_logging",
    "get_logger",
    "enable_debug",
    "log_summary",
    "reset_logging",
]

LOGGER_NAME = "invoice_tracker"

# INFO(20) と WARNING(30) の間
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """`LABEL message`, plus the traceback when a record carries exc_info."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        line = f"{label} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StdoutHandler(logging.StreamHandler):
    """Writes to whatever sys.stdout is when a record is emitted."""

    def __init__(self) -> None:
        logging.Handler.__init__(self)

    @property
    def stream(self) -> TextIO:  # type: ignore[override]
        return sys.stdout


def setup_logging(stream: TextIO | None = None, level: int = logging.INFO) -> logging.Logger:
    """Configure the package logger once; later calls return the same logger.

    Args:
        stream: destination (default: sys.stdout, looked up on every write)
        level: initial threshold for both the logger and its handler
    """
    global _logger
    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream) if stream is not None else StdoutHandler()
    handler.setLevel(level)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    # root へ流すと二重出力になる
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def enable_debug() -> None:
    logger = get_logger()
    for h in logger.handlers:
        h.setLevel(logging.DEBUG)
    logger.setLevel(logging.DEBUG)
    logger.debug("debug mode enabled")


def log_summary(message: str) -> None:
    """Emit the end-of-run SUMMARY line."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Forget the configured logger (tests re-bind stdout between cases)."""
    global _logger
    _logger = None
