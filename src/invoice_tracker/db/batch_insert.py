from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .connection import Dialect

"""Batched INSERT used by the record store.

PostgreSQL: psycopg2.extras.execute_values (one round trip per page).
SQLite: cursor.executemany.

Runs inside the caller's transaction; it never commits.
"""

try:  # pragma: no cover - optional until psycopg2 present at runtime
    from psycopg2.extras import execute_values
except Exception:  # pragma: no cover
    execute_values = None  # type: ignore


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Metrics data for a single batch insert operation."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int


def batch_insert(
    cursor: Any,
    dialect: Dialect,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert rows in one batch.

    Parameters
    ----------
    cursor: DB-API cursor inside an open transaction
    dialect: POSTGRES or SQLITE
    table: 対象テーブル名 (固定値のみ、外部入力は渡さない)
    columns: 挿入列
    rows: 行シーケンス
    page_size: execute_values の page_size
    metrics_callback: receives BatchMetrics; not invoked when `rows` is empty
    """
    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0)

    cols_sql = ",".join(columns)
    start_time = time.time()
    try:
        if dialect.placeholder == "%s":
            if execute_values is None:
                raise BatchInsertError("psycopg2 not available")
            execute_values(
                cursor, f"INSERT INTO {table} ({cols_sql}) VALUES %s", rows_list, page_size=page_size
            )
        else:
            marks = ",".join(dialect.placeholder for _ in columns)
            cursor.executemany(f"INSERT INTO {table} ({cols_sql}) VALUES ({marks})", rows_list)
    except BatchInsertError:
        raise
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    return InsertResult(inserted_rows=len(rows_list))
