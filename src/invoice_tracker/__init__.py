"""Lesson invoice tracker: spreadsheet ingestion, reconciliation and per-day travel distances."""

__version__ = "0.1.0"
