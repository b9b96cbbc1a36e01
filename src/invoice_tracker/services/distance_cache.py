from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from ..db.store import RecordStore, normalize_address
from ..routing.client import Coordinates, GeoRoutingClient

"""Distance lookup chain.

Read order:  MemoryDistanceTier -> PersistentDistanceTier -> provider
Write order: every tier (write-through), faster tiers back-filled on a hit.

Addresses are normalised (trimmed, lower-cased) and the pair is looked up in
both orders, so A->B and B->A share one entry. The third "tier" (a row's
stored kilometers) lives on the row itself and is checked by the route
calculator before anything here is consulted.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "DistanceTier",
    "MemoryDistanceTier",
    "PersistentDistanceTier",
    "DistanceCache",
    "DistanceService",
]


class DistanceTier(Protocol):
    name: str

    def get(self, origin: str, destination: str) -> float | None: ...

    def put(self, origin: str, destination: str, kilometers: float) -> None: ...

    def clear(self) -> None: ...


def _pair(origin: str, destination: str) -> str:
    return f"{normalize_address(origin)}|{normalize_address(destination)}"


class MemoryDistanceTier:
    name = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, origin: str, destination: str) -> float | None:
        found = self._entries.get(_pair(origin, destination))
        if found is None:
            found = self._entries.get(_pair(destination, origin))
        return found

    def put(self, origin: str, destination: str, kilometers: float) -> None:
        self._entries.pop(_pair(destination, origin), None)
        self._entries[_pair(origin, destination)] = kilometers

    def clear(self) -> None:
        self._entries.clear()


class PersistentDistanceTier:
    name = "store"

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def get(self, origin: str, destination: str) -> float | None:
        return self.store.get_cached_distance(origin, destination)

    def put(self, origin: str, destination: str, kilometers: float) -> None:
        self.store.set_cached_distance(origin, destination, kilometers)

    def clear(self) -> None:
        self.store.clear_distance_cache()


class DistanceCache:
    """Coordinator over an ordered list of tiers (fastest first)."""

    def __init__(self, tiers: Sequence[DistanceTier]) -> None:
        self.tiers = list(tiers)

    def lookup(self, origin: str, destination: str) -> float | None:
        for i, tier in enumerate(self.tiers):
            found = tier.get(origin, destination)
            if found is None:
                continue
            for faster in self.tiers[:i]:
                faster.put(origin, destination, found)
            logger.debug("distance hit tier=%s %s -> %s = %.3f", tier.name, origin, destination, found)
            return found
        return None

    def store(self, origin: str, destination: str, kilometers: float) -> None:
        for tier in self.tiers:
            tier.put(origin, destination, kilometers)

    def clear(self) -> None:
        for tier in self.tiers:
            tier.clear()


class DistanceService:
    """Address-to-address distance in km, cache first, provider on miss."""

    def __init__(self, client: GeoRoutingClient, cache: DistanceCache) -> None:
        self.client = client
        self.cache = cache
        self._coordinates: dict[str, Coordinates] = {}

    def _geocode(self, address: str, skip_cache: bool) -> Coordinates:
        key = normalize_address(address)
        if not skip_cache and key in self._coordinates:
            return self._coordinates[key]
        coords = self.client.geocode(address)
        self._coordinates[key] = coords
        return coords

    def distance(self, origin: str, destination: str, *, skip_cache: bool = False) -> float:
        if normalize_address(origin) == normalize_address(destination):
            self.cache.store(origin, destination, 0.0)
            return 0.0

        if not skip_cache:
            cached = self.cache.lookup(origin, destination)
            if cached is not None:
                return cached

        # 順番に geocode (レートリミッタを共有するため並列化しない)
        start = self._geocode(origin, skip_cache)
        end = self._geocode(destination, skip_cache)
        kilometers = self.client.distance(start, end)
        self.cache.store(origin, destination, kilometers)
        logger.debug("distance computed %s -> %s = %.3f km", origin, destination, kilometers)
        return kilometers

    def clear(self) -> None:
        self.cache.clear()
        self._coordinates.clear()
