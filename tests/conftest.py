# Shared pytest fixtures
from __future__ import annotations

import io
import sqlite3
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from invoice_tracker.db.addresses import AddressRepository
from invoice_tracker.db.connection import SQLITE
from invoice_tracker.db.store import RecordStore, normalize_address
from invoice_tracker.errors import GeocodeError, RouteError
from invoice_tracker.logging.init import reset_logging
from invoice_tracker.services.distance_cache import (
    DistanceCache,
    DistanceService,
    MemoryDistanceTier,
    PersistentDistanceTier,
)

DEFAULT_HEADER = ["Lesson Date", "Client Name", "Lesson Time", "Amount"]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # .env やシェルの値がテストに漏れないようにする
    for name in ("DATABASE_URL", "PGDSN", "ORS_API_KEY", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  dsn: "sqlite:///data/test.db"
routing:
  api_key: "test-key"
  min_interval_seconds: 0
  max_attempts: 3
spreadsheet:
  total_amount_row: 1
  total_amount_column: 9
logs_directory: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "tracker.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def invoice_grid(
    data_rows: list[list[Any]],
    *,
    header: list[str] | None = None,
    header_index: int = 9,
    total: Any = "$150.00",
    totals_row: bool = True,
) -> list[list[Any]]:
    """Cell grid laid out like the tutor invoice sheets (title block, J2 total, header, rows)."""
    header = list(header or DEFAULT_HEADER)
    width = max(len(header), 10)
    grid: list[list[Any]] = []
    for i in range(header_index):
        row: list[Any] = [None] * width
        row[0] = "Tax Invoice" if i == 0 else f"note {i}"
        grid.append(row)
    grid[1][9] = total
    grid.append(header + [None] * (width - len(header)))
    for r in data_rows:
        grid.append(list(r) + [None] * (width - len(r)))
    if totals_row:
        footer: list[Any] = [None] * width
        footer[0] = "Total"
        footer[3] = sum(r[3] for r in data_rows if len(r) > 3 and isinstance(r[3], (int, float)))
        grid.append(footer)
    return grid


def grid_bytes(grid: list[list[Any]]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(grid).to_excel(writer, sheet_name="Invoice", header=False, index=False)
    return buf.getvalue()


def invoice_bytes(data_rows: list[list[Any]], **kwargs: Any) -> bytes:
    return grid_bytes(invoice_grid(data_rows, **kwargs))


def write_invoice(path: Path, data_rows: list[list[Any]], **kwargs: Any) -> Path:
    path.write_bytes(invoice_bytes(data_rows, **kwargs))
    return path


@pytest.fixture()
def jan_rows() -> list[list[Any]]:
    return [
        [datetime(2024, 1, 5), "Alice", "10:00", 60],
        [datetime(2024, 1, 5), "Bob", "11:30", 45],
        [datetime(2024, 1, 6), "Alice", "10:00", 60],
    ]


@pytest.fixture()
def store() -> RecordStore:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    s = RecordStore(conn, SQLITE)
    s.initialize()
    yield s
    conn.close()


@pytest.fixture()
def addresses(store: RecordStore) -> AddressRepository:
    return AddressRepository(store)


class FakeRoutingClient:
    """Stand-in for GeoRoutingClient: addresses map to fake coordinates, pairs to km."""

    def __init__(self, pairs: dict[tuple[str, str], float] | None = None) -> None:
        self.pairs = {
            (normalize_address(a), normalize_address(b)): km for (a, b), km in (pairs or {}).items()
        }
        self.geocode_calls: list[str] = []
        self.distance_calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self._names: dict[tuple[float, float], str] = {}

    def geocode(self, address: str) -> tuple[float, float]:
        self.geocode_calls.append(address)
        key = normalize_address(address)
        if not key or key in self.failing:
            raise GeocodeError(f"no geocoding match for {address!r}")
        coords = (float(len(self._names) + 1), float(len(self._names) + 1))
        for existing, name in self._names.items():
            if name == key:
                return existing
        self._names[coords] = key
        return coords

    def distance(self, origin: tuple[float, float], destination: tuple[float, float]) -> float:
        a, b = self._names[origin], self._names[destination]
        self.distance_calls.append((a, b))
        if (a, b) in self.pairs:
            return self.pairs[(a, b)]
        if (b, a) in self.pairs:
            return self.pairs[(b, a)]
        raise RouteError(f"no route between {a} and {b}")


@pytest.fixture()
def fake_client() -> FakeRoutingClient:
    return FakeRoutingClient(
        {
            ("H", "C1"): 10.0,
            ("C1", "C2"): 5.0,
            ("C2", "H"): 12.0,
            ("H", "C2"): 12.0,
        }
    )


@pytest.fixture()
def distance_service(fake_client: FakeRoutingClient, store: RecordStore) -> DistanceService:
    cache = DistanceCache([MemoryDistanceTier(), PersistentDistanceTier(store)])
    return DistanceService(fake_client, cache)  # type: ignore[arg-type]
