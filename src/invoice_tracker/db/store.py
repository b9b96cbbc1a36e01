from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from ..errors import StoreError
from ..excel.dates import restore_iso_datetime
from ..models.parsed_file import InvoiceLedger, KilometerUpdate, ParsedFile, StoredFile
from ..models.row_data import InvoiceRow
from ..services.reconcile import plan_merge
from .batch_insert import BatchInsertError, BatchMetrics, batch_insert
from .connection import Dialect

"""Durable record store for uploaded invoice files.

Tables (logical layout):
- uploaded_files   filename (unique), content_hash (unique), uploaded_at, total_amount
- invoice_records  owning file, position, serialised row (JSON), nullable kilometers
- file_columns     owning file, position, column name
- distance_cache   normalised origin / destination, distance_km, created_at
- addresses        see db.addresses

File-level mutations (save / delete / replace / merge) run inside one explicit
transaction each: every row and column is committed together or rolled back,
and callers only ever see StoreError. Kilometer updates and distance-cache
writes use their own, narrower transactions.
"""

logger = logging.getLogger(__name__)

_ISOFORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?$")

__all__ = [
    "RecordStore",
    "serialize_values",
    "deserialize_values",
    "normalize_address",
]


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def normalize_address(address: str) -> str:
    return address.strip().lower()


def _json_default(value: Any) -> str:
    # datetime 以外の date / time セルもここを通る
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _insert_timing(filename: str, table: str) -> Callable[[BatchMetrics], None]:
    def report(metrics: BatchMetrics) -> None:
        logger.debug(
            "file=%s table=%s batch=%d elapsed=%.3fs", filename, table, metrics.batch_size, metrics.elapsed_seconds
        )

    return report


def serialize_values(values: dict[str, Any]) -> str:
    return json.dumps(
        {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in values.items()},
        ensure_ascii=False,
        default=_json_default,
    )


def deserialize_values(payload: str) -> dict[str, Any]:
    raw = json.loads(payload)
    values: dict[str, Any] = {}
    for k, v in raw.items():
        # 日付列の ISO 文字列のみ datetime に戻す
        if isinstance(v, str) and "date" in k.lower() and _ISOFORMAT.match(v):
            values[k] = restore_iso_datetime(v)
        else:
            values[k] = v
    return values


class RecordStore:
    """Keyed storage for uploaded files, their rows and per-row kilometers."""

    def __init__(self, connection: Any, dialect: Dialect) -> None:
        self._conn = connection
        self.dialect = dialect
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # transaction plumbing
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Yield a cursor; COMMIT on success, ROLLBACK + StoreError on any failure."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception as e:
                try:
                    self._conn.rollback()
                except Exception as rollback_e:  # pragma: no cover
                    logger.error("rollback failed: %s", rollback_e)
                if isinstance(e, StoreError):
                    raise
                raise StoreError(f"transaction failed: {e}") from e
            finally:
                cur.close()

    @contextmanager
    def read(self) -> Iterator[Any]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
            except Exception as e:
                raise StoreError(f"query failed: {e}") from e
            finally:
                cur.close()
                # psycopg2 は SELECT でもトランザクションを開くため閉じておく
                try:
                    self._conn.rollback()
                except Exception:  # pragma: no cover
                    pass

    def _q(self, query: str) -> str:
        return self.dialect.sql(query)

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        id_col = self.dialect.id_column
        statements = [
            f"""CREATE TABLE IF NOT EXISTS uploaded_files (
                id {id_col},
                filename TEXT NOT NULL UNIQUE,
                content_hash TEXT NOT NULL UNIQUE,
                uploaded_at TEXT NOT NULL,
                total_amount DOUBLE PRECISION NOT NULL DEFAULT 0
            )""",
            f"""CREATE TABLE IF NOT EXISTS invoice_records (
                id {id_col},
                file_id INTEGER NOT NULL REFERENCES uploaded_files(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                record_data TEXT NOT NULL,
                kilometers DOUBLE PRECISION
            )""",
            f"""CREATE TABLE IF NOT EXISTS file_columns (
                id {id_col},
                file_id INTEGER NOT NULL REFERENCES uploaded_files(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                column_name TEXT NOT NULL
            )""",
            "CREATE INDEX IF NOT EXISTS idx_invoice_records_file_id ON invoice_records(file_id)",
            "CREATE INDEX IF NOT EXISTS idx_file_columns_file_id ON file_columns(file_id)",
            f"""CREATE TABLE IF NOT EXISTS distance_cache (
                id {id_col},
                origin_address TEXT NOT NULL,
                destination_address TEXT NOT NULL,
                distance_km DOUBLE PRECISION NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (origin_address, destination_address)
            )""",
            f"""CREATE TABLE IF NOT EXISTS addresses (
                id {id_col},
                address_type TEXT NOT NULL,
                client_name TEXT,
                address TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (address_type, client_name)
            )""",
        ]
        with self.transaction() as cur:
            for stmt in statements:
                cur.execute(stmt)

    # ------------------------------------------------------------------
    # file lookups
    # ------------------------------------------------------------------
    _FILE_COLS = "id, filename, content_hash, uploaded_at, total_amount"

    @staticmethod
    def _to_file(row: tuple[Any, ...] | None) -> StoredFile | None:
        if row is None:
            return None
        return StoredFile(
            id=int(row[0]),
            filename=row[1],
            content_hash=row[2],
            uploaded_at=str(row[3]),
            total_amount=float(row[4] or 0.0),
        )

    def _find_one(self, where: str, param: Any) -> StoredFile | None:
        with self.read() as cur:
            cur.execute(self._q(f"SELECT {self._FILE_COLS} FROM uploaded_files WHERE {where} = %s"), (param,))
            return self._to_file(cur.fetchone())

    def find_by_hash(self, digest: str) -> StoredFile | None:
        return self._find_one("content_hash", digest)

    def find_by_filename(self, filename: str) -> StoredFile | None:
        return self._find_one("filename", filename)

    def get_file(self, file_id: int) -> StoredFile | None:
        return self._find_one("id", file_id)

    def all_files(self) -> list[StoredFile]:
        with self.read() as cur:
            cur.execute(f"SELECT {self._FILE_COLS} FROM uploaded_files ORDER BY id")
            return [f for f in (self._to_file(r) for r in cur.fetchall()) if f is not None]

    # ------------------------------------------------------------------
    # rows / columns
    # ------------------------------------------------------------------
    def _select_rows(self, cur: Any, file_id: int) -> list[InvoiceRow]:
        cur.execute(
            self._q(
                "SELECT id, record_data, kilometers FROM invoice_records "
                "WHERE file_id = %s ORDER BY position, id"
            ),
            (file_id,),
        )
        return [
            InvoiceRow(
                values=deserialize_values(data),
                row_id=int(row_id),
                kilometers=float(km) if km is not None else None,
            )
            for row_id, data, km in cur.fetchall()
        ]

    def _select_columns(self, cur: Any, file_id: int) -> list[str]:
        cur.execute(
            self._q("SELECT column_name FROM file_columns WHERE file_id = %s ORDER BY position, id"),
            (file_id,),
        )
        return [r[0] for r in cur.fetchall()]

    def file_rows(self, file_id: int) -> list[InvoiceRow]:
        with self.read() as cur:
            return self._select_rows(cur, file_id)

    def file_columns(self, file_id: int) -> list[str]:
        with self.read() as cur:
            return self._select_columns(cur, file_id)

    def row_count(self) -> int:
        with self.read() as cur:
            cur.execute("SELECT COUNT(*) FROM invoice_records")
            return int(cur.fetchone()[0])

    def all_rows(self) -> InvoiceLedger:
        """Aggregate view: every file's rows, column union, summed declared totals."""
        files = self.all_files()
        rows: list[InvoiceRow] = []
        columns: list[str] = []
        with self.read() as cur:
            for f in files:
                rows.extend(self._select_rows(cur, f.id))
                for col in self._select_columns(cur, f.id):
                    if col not in columns:
                        columns.append(col)
        return InvoiceLedger(
            files=files,
            rows=[r.project(columns) for r in rows],
            columns=columns,
            total_amount=sum(f.total_amount for f in files),
        )

    def get_row(self, row_id: int) -> InvoiceRow | None:
        with self.read() as cur:
            cur.execute(
                self._q("SELECT id, record_data, kilometers FROM invoice_records WHERE id = %s"), (row_id,)
            )
            found = cur.fetchone()
        if found is None:
            return None
        return InvoiceRow(
            values=deserialize_values(found[1]),
            row_id=int(found[0]),
            kilometers=float(found[2]) if found[2] is not None else None,
        )

    # ------------------------------------------------------------------
    # file mutations (all-or-nothing)
    # ------------------------------------------------------------------
    def _insert_file(
        self, cur: Any, filename: str, digest: str, parsed: ParsedFile
    ) -> int:
        params = (filename, digest, _now(), float(parsed.total_amount or 0.0))
        if self.dialect.placeholder == "%s":
            cur.execute(
                "INSERT INTO uploaded_files (filename, content_hash, uploaded_at, total_amount) "
                "VALUES (%s, %s, %s, %s) RETURNING id",
                params,
            )
            file_id = int(cur.fetchone()[0])
        else:
            cur.execute(
                self._q(
                    "INSERT INTO uploaded_files (filename, content_hash, uploaded_at, total_amount) "
                    "VALUES (%s, %s, %s, %s)"
                ),
                params,
            )
            file_id = int(cur.lastrowid)

        try:
            records = batch_insert(
                cur,
                self.dialect,
                "invoice_records",
                ["file_id", "position", "record_data", "kilometers"],
                [
                    (file_id, pos, serialize_values(row.values), row.kilometers)
                    for pos, row in enumerate(parsed.rows)
                ],
                metrics_callback=_insert_timing(filename, "invoice_records"),
            )
            columns = batch_insert(
                cur,
                self.dialect,
                "file_columns",
                ["file_id", "position", "column_name"],
                [(file_id, pos, col) for pos, col in enumerate(parsed.columns)],
                metrics_callback=_insert_timing(filename, "file_columns"),
            )
        except BatchInsertError as e:
            raise StoreError(f"insert failed for {filename}: {e}") from e
        logger.debug(
            "file=%s id=%d inserted records=%d columns=%d",
            filename,
            file_id,
            records.inserted_rows,
            columns.inserted_rows,
        )
        return file_id

    def _delete_file(self, cur: Any, file_id: int) -> None:
        # CASCADE に頼らず明示削除 (SQLite の foreign_keys 設定に依存しない)
        cur.execute(self._q("DELETE FROM invoice_records WHERE file_id = %s"), (file_id,))
        cur.execute(self._q("DELETE FROM file_columns WHERE file_id = %s"), (file_id,))
        cur.execute(self._q("DELETE FROM uploaded_files WHERE id = %s"), (file_id,))

    def save(self, filename: str, digest: str, parsed: ParsedFile) -> int:
        with self.transaction() as cur:
            file_id = self._insert_file(cur, filename, digest, parsed)
        logger.info("stored file=%s id=%d rows=%d", filename, file_id, len(parsed.rows))
        return file_id

    def delete(self, file_id: int) -> None:
        with self.transaction() as cur:
            self._delete_file(cur, file_id)
        logger.info("deleted file id=%d", file_id)

    def replace(self, file_id: int, filename: str, digest: str, parsed: ParsedFile) -> int:
        """Delete the existing file and store `parsed` in its place (one transaction)."""
        with self.transaction() as cur:
            self._delete_file(cur, file_id)
            new_id = self._insert_file(cur, filename, digest, parsed)
        logger.info("replaced file=%s old_id=%d new_id=%d rows=%d", filename, file_id, new_id, len(parsed.rows))
        return new_id

    def merge(self, file_id: int, filename: str, digest: str, parsed: ParsedFile) -> int:
        """Keep every existing row, add only rows whose key is unseen (one transaction)."""
        with self.transaction() as cur:
            cur.execute(
                self._q(f"SELECT {self._FILE_COLS} FROM uploaded_files WHERE id = %s"), (file_id,)
            )
            existing = self._to_file(cur.fetchone())
            if existing is None:
                raise StoreError(f"file id={file_id} not found")
            merged = plan_merge(
                existing_rows=self._select_rows(cur, file_id),
                existing_columns=self._select_columns(cur, file_id),
                existing_total=existing.total_amount,
                incoming=parsed,
            )
            self._delete_file(cur, file_id)
            new_id = self._insert_file(cur, filename, digest, merged)
        logger.info(
            "merged file=%s old_id=%d new_id=%d rows=%d (+%d)",
            filename,
            file_id,
            new_id,
            len(merged.rows),
            len(merged.rows) - len([r for r in merged.rows if r.row_id is not None]),
        )
        return new_id

    # ------------------------------------------------------------------
    # per-row kilometers (independent of file mutations)
    # ------------------------------------------------------------------
    def set_kilometers(self, row_id: int, kilometers: float | None) -> None:
        with self.transaction() as cur:
            cur.execute(
                self._q("UPDATE invoice_records SET kilometers = %s WHERE id = %s"), (kilometers, row_id)
            )

    def set_kilometers_batch(self, updates: Iterable[KilometerUpdate]) -> int:
        items = [(u.kilometers, u.row_id) for u in updates]
        if not items:
            return 0
        with self.transaction() as cur:
            cur.executemany(self._q("UPDATE invoice_records SET kilometers = %s WHERE id = %s"), items)
        return len(items)

    # ------------------------------------------------------------------
    # distance cache (tier 2)
    # ------------------------------------------------------------------
    def get_cached_distance(self, origin: str, destination: str) -> float | None:
        o, d = normalize_address(origin), normalize_address(destination)
        with self.read() as cur:
            cur.execute(
                self._q(
                    "SELECT distance_km FROM distance_cache "
                    "WHERE (origin_address = %s AND destination_address = %s) "
                    "OR (origin_address = %s AND destination_address = %s)"
                ),
                (o, d, d, o),
            )
            found = cur.fetchone()
        return float(found[0]) if found is not None else None

    def set_cached_distance(self, origin: str, destination: str, distance_km: float) -> None:
        o, d = normalize_address(origin), normalize_address(destination)
        with self.transaction() as cur:
            # 1 ペア 1 行: 逆順の行は新しい値で置き換える
            if o != d:
                cur.execute(
                    self._q("DELETE FROM distance_cache WHERE origin_address = %s AND destination_address = %s"),
                    (d, o),
                )
            cur.execute(
                self._q(
                    "INSERT INTO distance_cache (origin_address, destination_address, distance_km, created_at) "
                    "VALUES (%s, %s, %s, %s) "
                    "ON CONFLICT (origin_address, destination_address) "
                    "DO UPDATE SET distance_km = excluded.distance_km, created_at = excluded.created_at"
                ),
                (o, d, float(distance_km), _now()),
            )

    def cached_distances(self) -> list[tuple[str, str, float, str]]:
        with self.read() as cur:
            cur.execute(
                "SELECT origin_address, destination_address, distance_km, created_at "
                "FROM distance_cache ORDER BY created_at DESC, id DESC"
            )
            return [(r[0], r[1], float(r[2]), str(r[3])) for r in cur.fetchall()]

    def clear_distance_cache(self) -> int:
        with self.transaction() as cur:
            cur.execute("DELETE FROM distance_cache")
            removed = cur.rowcount
        return max(int(removed or 0), 0)
