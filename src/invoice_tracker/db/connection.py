from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..config.loader import resolve_dsn
from ..errors import StoreError
from ..models.config_models import DatabaseConfig

"""Connection factory and SQL dialect selection.

Production stores live in PostgreSQL (psycopg2). A `sqlite:///path` DSN selects
an embedded single-file store for local single-user use; `sqlite:///:memory:`
is what the test-suite uses. Queries are written once with `%s` placeholders
and translated per dialect.
"""

__all__ = [
    "Dialect",
    "POSTGRES",
    "SQLITE",
    "open_connection",
    "db_connection",
]

SQLITE_PREFIX = "sqlite:///"


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str
    id_column: str  # auto-increment primary key DDL

    def sql(self, query: str) -> str:
        if self.placeholder == "%s":
            return query
        return query.replace("%s", self.placeholder)


POSTGRES = Dialect(name="postgresql", placeholder="%s", id_column="SERIAL PRIMARY KEY")
SQLITE = Dialect(name="sqlite", placeholder="?", id_column="INTEGER PRIMARY KEY AUTOINCREMENT")


def _connect_sqlite(target: str) -> Any:
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def open_connection(db_cfg: DatabaseConfig) -> tuple[Any, Dialect]:
    """Open a DB-API connection (autocommit off) and return it with its dialect."""
    dsn = resolve_dsn(db_cfg)
    if dsn.startswith(SQLITE_PREFIX):
        try:
            return _connect_sqlite(dsn[len(SQLITE_PREFIX):]), SQLITE
        except sqlite3.Error as e:
            raise StoreError(f"cannot open sqlite store: {e}") from e

    try:
        import psycopg2  # type: ignore
    except Exception as e:  # psycopg2-binary が依存にある想定
        raise StoreError(f"psycopg2 not available: {e}") from e
    try:
        conn = psycopg2.connect(dsn)
    except psycopg2.Error as e:
        raise StoreError(f"cannot connect to database: {e}") from e
    conn.autocommit = False  # 明示トランザクション境界 (RecordStore が COMMIT/ROLLBACK)
    return conn, POSTGRES


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[tuple[Any, Dialect]]:
    conn, dialect = open_connection(db_cfg)
    try:
        yield conn, dialect
    finally:
        try:
            conn.close()
        except Exception:  # pragma: no cover
            pass
