from __future__ import annotations

import sqlite3

import pytest

from invoice_tracker.db import batch_insert as batch_module
from invoice_tracker.db.batch_insert import BatchInsertError, batch_insert
from invoice_tracker.db.connection import POSTGRES, SQLITE


class DummyCursor:
    pass


def test_empty_rows_do_nothing():
    calls = []
    result = batch_insert(DummyCursor(), SQLITE, "t", ["a"], [], metrics_callback=calls.append)
    assert result.inserted_rows == 0
    assert calls == []


def test_sqlite_uses_executemany():
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE t (a INTEGER, b TEXT)")
    metrics = []
    result = batch_insert(conn.cursor(), SQLITE, "t", ["a", "b"], [(1, "x"), [2, "y"]], metrics_callback=metrics.append)
    assert result.inserted_rows == 2
    assert conn.execute("SELECT a, b FROM t ORDER BY a").fetchall() == [(1, "x"), (2, "y")]
    assert metrics[0].batch_size == 2
    assert metrics[0].elapsed_seconds >= 0


def test_postgres_uses_execute_values(monkeypatch):
    seen = {}

    def fake_execute_values(cursor, sql, rows, page_size):
        seen.update(cursor=cursor, sql=sql, rows=rows, page_size=page_size)

    monkeypatch.setattr(batch_module, "execute_values", fake_execute_values)
    cur = DummyCursor()
    result = batch_insert(cur, POSTGRES, "invoice_records", ["file_id", "position"], [(1, 0), (1, 1)], page_size=50)
    assert result.inserted_rows == 2
    assert seen["sql"] == "INSERT INTO invoice_records (file_id,position) VALUES %s"
    assert seen["rows"] == [(1, 0), (1, 1)]
    assert seen["page_size"] == 50
    assert seen["cursor"] is cur


def test_driver_errors_are_wrapped():
    conn = sqlite3.connect(":memory:")
    metrics = []
    with pytest.raises(BatchInsertError):
        batch_insert(conn.cursor(), SQLITE, "missing_table", ["a"], [(1,)], metrics_callback=metrics.append)
    # 失敗時もメトリクスは通知される
    assert len(metrics) == 1
