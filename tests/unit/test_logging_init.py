from __future__ import annotations

import io
import logging
import sys

from invoice_tracker.logging.init import (
    LOGGER_NAME,
    enable_debug,
    get_logger,
    log_summary,
    setup_logging,
)


def test_labels_and_summary_level(capsys):
    logger = setup_logging()
    logger.info("hello")
    logger.warning("careful")
    logger.error("broken")
    log_summary("files=1 stored=1")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY files=1 stored=1"]


def test_setup_is_idempotent():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert len(first.handlers) == 1
    assert get_logger() is first


def test_module_loggers_propagate_to_package_logger(capsys):
    setup_logging()
    logging.getLogger(f"{LOGGER_NAME}.services.uploads").info("stored file=jan.xlsx")
    assert capsys.readouterr().out == "INFO stored file=jan.xlsx\n"


def test_debug_hidden_until_enabled(capsys):
    logger = setup_logging()
    logger.debug("hidden")
    assert capsys.readouterr().out == ""
    enable_debug()
    logger.debug("shown")
    assert "DEBUG shown" in capsys.readouterr().out.splitlines()


def test_exception_traceback_is_appended(capsys):
    logger = setup_logging()
    try:
        raise ValueError("bad cell")
    except ValueError:
        logger.exception("parse failed")
    out = capsys.readouterr().out
    assert out.startswith("ERROR parse failed\n")
    assert "ValueError: bad cell" in out


def test_custom_stream(tmp_path):
    target = tmp_path / "run.log"
    with target.open("w", encoding="utf-8") as fh:
        logger = setup_logging(stream=fh)
        logger.warning("written to file")
        for h in logger.handlers:
            h.flush()
    assert target.read_text(encoding="utf-8") == "WARN written to file\n"


def test_default_handler_follows_rebound_stdout(monkeypatch):
    logger = setup_logging()
    first, second = io.StringIO(), io.StringIO()
    monkeypatch.setattr(sys, "stdout", first)
    logger.info("one")
    monkeypatch.setattr(sys, "stdout", second)
    log_summary("rows=1")
    assert first.getvalue() == "INFO one\n"
    assert second.getvalue() == "SUMMARY rows=1\n"
