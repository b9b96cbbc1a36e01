from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..db.addresses import AddressBook
from ..db.store import RecordStore
from ..errors import (
    ConfigError,
    GeocodeError,
    ProviderUnavailable,
    RateLimitExceeded,
    RoutingError,
)
from ..excel.dates import to_calendar_date
from ..models.error_record import (
    CONFIG_WARNING,
    GEOCODE_ERROR,
    MISSING_CLIENT_ADDRESS,
    PROVIDER_UNAVAILABLE,
    RATE_LIMIT_EXCEEDED,
    ROUTE_ERROR,
    ErrorRecord,
)
from ..models.parsed_file import KilometerUpdate
from ..models.processing_result import RouteResult, TripLeg
from ..models.row_data import InvoiceRow
from .distance_cache import DistanceService
from .identity import find_client_column, find_date_column
from .progress import ProgressTracker

"""Per-day route distances.

Rows are grouped by lesson calendar date. Within a day the stop sequence is
the spreadsheet order; every day starts from home (no carry-over from the
previous day). For each stop:

- a positive stored kilometers value is kept as-is (no provider calls), but
  the stop still becomes the previous stop for the next row
- a client without a configured address gets 0 km and does not move the
  route forward
- otherwise the leg previous-stop -> client is added; the last addressed
  stop of the day also gets the return leg client -> home

A failed leg contributes nothing (the other leg still counts) and is
reported as an ErrorRecord; nothing here raises for a row-level failure.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ROUTES_LABEL",
    "round_km",
    "group_by_day",
    "DayRouteCalculator",
]

ROUTES_LABEL = "<ROUTES>"


def round_km(value: float) -> float:
    """Round to one decimal place, half-up."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def group_by_day(rows: list[InvoiceRow]) -> dict[date, list[int]]:
    """Calendar date -> row indices (input order); undated rows are left out."""
    groups: dict[date, list[int]] = {}
    for idx, row in enumerate(rows):
        day = to_calendar_date(row.get(find_date_column(row.values.keys())))
        if day is None:
            continue
        groups.setdefault(day, []).append(idx)
    return groups


def _error_type(e: Exception) -> str:
    if isinstance(e, RateLimitExceeded):
        return RATE_LIMIT_EXCEEDED
    if isinstance(e, ProviderUnavailable):
        return PROVIDER_UNAVAILABLE
    if isinstance(e, GeocodeError):
        return GEOCODE_ERROR
    return ROUTE_ERROR


def _client_name(row: InvoiceRow) -> str | None:
    value = row.get(find_client_column(row.values.keys()))
    if value is None:
        return None
    name = str(value).strip()
    return name or None


class DayRouteCalculator:
    def __init__(
        self,
        address_book: AddressBook,
        distances: DistanceService,
        store: RecordStore | None = None,
    ) -> None:
        self.address_book = address_book
        self.distances = distances
        self.store = store

    def compute_routes(self, rows: Iterable[InvoiceRow]) -> RouteResult:
        """Attach kilometers to every row (input order preserved)."""
        started = time.time()
        result = list(rows)
        legs: list[TripLeg] = []
        warnings: list[ErrorRecord] = []

        home = self.address_book.get_home_address()
        if not home:
            warnings.append(
                ErrorRecord.create(
                    ROUTES_LABEL, -1, CONFIG_WARNING, "home address is not configured; distances set to 0"
                )
            )
            logger.warning("home address is not configured; distances set to 0")
            return RouteResult(
                rows=[r if r.has_stored_distance else r.with_kilometers(0.0) for r in result],
                warnings=warnings,
                elapsed_seconds=time.time() - started,
            )

        groups = group_by_day(result)
        grouped = {i for indices in groups.values() for i in indices}
        for idx, row in enumerate(result):
            if idx not in grouped and not row.has_stored_distance:
                result[idx] = row.with_kilometers(0.0)

        with ProgressTracker(len(groups), description="Computing routes", unit="day") as progress:
            for day, indices in groups.items():
                progress.start(day.isoformat())
                updates = self._route_day(indices, result, home, legs, warnings)
                if self.store is not None and updates:
                    self.store.set_kilometers_batch(updates)
                progress.finish()

        elapsed = time.time() - started
        logger.info(
            "routes computed days=%d rows=%d legs=%d warnings=%d", len(groups), len(result), len(legs), len(warnings)
        )
        return RouteResult(
            rows=result, legs=legs, warnings=warnings, day_count=len(groups), elapsed_seconds=elapsed
        )

    def _route_day(
        self,
        indices: list[int],
        rows: list[InvoiceRow],
        home: str,
        legs: list[TripLeg],
        warnings: list[ErrorRecord],
    ) -> list[KilometerUpdate]:
        addresses: dict[int, str | None] = {}
        for idx in indices:
            name = _client_name(rows[idx])
            addresses[idx] = self.address_book.get_client_address(name) if name else None
        addressed = [idx for idx in indices if addresses[idx]]
        last_addressed = addressed[-1] if addressed else None

        updates: list[KilometerUpdate] = []
        previous = home
        for idx in indices:
            row = rows[idx]
            address = addresses[idx]
            if row.has_stored_distance:
                if address:
                    previous = address
                continue
            if not address:
                name = _client_name(row)
                message = f"no address configured for client {name!r}" if name else "row has no client name"
                warnings.append(ErrorRecord.create(ROUTES_LABEL, idx, MISSING_CLIENT_ADDRESS, message))
                rows[idx] = row.with_kilometers(0.0)
                continue

            km = 0.0
            outbound = self._leg(previous, address, idx, legs, warnings)
            if outbound is not None:
                km += outbound
                previous = address
            if idx == last_addressed:
                back = self._leg(address, home, idx, legs, warnings)
                if back is not None:
                    km += back

            km = round_km(km)
            rows[idx] = row.with_kilometers(km)
            if row.row_id is not None and km > 0:
                updates.append(KilometerUpdate(row_id=row.row_id, kilometers=km))
        return updates

    def _leg(
        self,
        origin: str,
        destination: str,
        idx: int,
        legs: list[TripLeg],
        warnings: list[ErrorRecord],
    ) -> float | None:
        try:
            km = self.distances.distance(origin, destination)
        except ConfigError as e:
            # 資格情報なし: キャッシュにない区間は 0 扱い (警告は 1 回だけ)
            if not any(w.error_type == CONFIG_WARNING for w in warnings):
                warnings.append(ErrorRecord.create(ROUTES_LABEL, -1, CONFIG_WARNING, str(e)))
                logger.warning("%s", e)
            return None
        except RoutingError as e:
            warnings.append(
                ErrorRecord.create(ROUTES_LABEL, idx, _error_type(e), f"{origin} -> {destination}: {e}")
            )
            logger.warning("row=%d leg %s -> %s failed: %s", idx, origin, destination, e)
            return None
        legs.append(TripLeg(origin=origin, destination=destination, kilometers=km, row_index=idx))
        return km

    def refresh_row(self, row: InvoiceRow) -> InvoiceRow:
        """Force fresh home -> client -> home for one row, persist and return it.

        Raises ConfigError when home or the client's address is missing; routing
        errors propagate since the caller asked for this single row explicitly.
        """
        home = self.address_book.get_home_address()
        if not home:
            raise ConfigError("home address is not configured")
        name = _client_name(row)
        address = self.address_book.get_client_address(name) if name else None
        if not address:
            raise ConfigError(f"no address configured for client {name!r}")

        outbound = self.distances.distance(home, address, skip_cache=True)
        back = self.distances.distance(address, home, skip_cache=True)
        km = round_km(outbound + back)
        if self.store is not None and row.row_id is not None and km > 0:
            self.store.set_kilometers(row.row_id, km)
        logger.info("row refreshed id=%s client=%s km=%.1f", row.row_id, name, km)
        return row.with_kilometers(km)
