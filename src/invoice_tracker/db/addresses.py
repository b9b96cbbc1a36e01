from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Protocol

from .store import RecordStore

"""Address book persistence (home address + client-name -> address).

The route calculator only depends on the read side (AddressBook protocol);
writes come from the CLI `address` commands.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "AddressBook",
    "AddressRepository",
    "HOME",
    "CLIENT",
]

HOME = "home"
CLIENT = "client"


class AddressBook(Protocol):
    def get_home_address(self) -> str | None: ...

    def get_client_address(self, client_name: str) -> str | None: ...


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    return text or None


class AddressRepository:
    """addresses table access on top of RecordStore's connection and lock."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def get_home_address(self) -> str | None:
        with self.store.read() as cur:
            cur.execute(
                self.store.dialect.sql(
                    "SELECT address FROM addresses WHERE address_type = %s AND client_name IS NULL"
                ),
                (HOME,),
            )
            found = cur.fetchone()
        return _clean(found[0]) if found else None

    def set_home_address(self, address: str) -> None:
        # client_name が NULL だと UNIQUE が効かないため delete -> insert
        now = _now()
        with self.store.transaction() as cur:
            cur.execute(self.store.dialect.sql("DELETE FROM addresses WHERE address_type = %s"), (HOME,))
            cur.execute(
                self.store.dialect.sql(
                    "INSERT INTO addresses (address_type, client_name, address, created_at, updated_at) "
                    "VALUES (%s, NULL, %s, %s, %s)"
                ),
                (HOME, address.strip(), now, now),
            )
        logger.info("home address updated")

    def get_client_address(self, client_name: str) -> str | None:
        name = _clean(client_name)
        if name is None:
            return None
        with self.store.read() as cur:
            cur.execute(
                self.store.dialect.sql(
                    "SELECT address FROM addresses WHERE address_type = %s AND client_name = %s"
                ),
                (CLIENT, name),
            )
            found = cur.fetchone()
        return _clean(found[0]) if found else None

    def set_client_address(self, client_name: str, address: str) -> None:
        now = _now()
        with self.store.transaction() as cur:
            cur.execute(
                self.store.dialect.sql(
                    "INSERT INTO addresses (address_type, client_name, address, created_at, updated_at) "
                    "VALUES (%s, %s, %s, %s, %s) "
                    "ON CONFLICT (address_type, client_name) "
                    "DO UPDATE SET address = excluded.address, updated_at = excluded.updated_at"
                ),
                (CLIENT, client_name.strip(), address.strip(), now, now),
            )

    def remove_client_address(self, client_name: str) -> bool:
        with self.store.transaction() as cur:
            cur.execute(
                self.store.dialect.sql("DELETE FROM addresses WHERE address_type = %s AND client_name = %s"),
                (CLIENT, client_name.strip()),
            )
            removed = cur.rowcount
        return bool(removed and removed > 0)

    def all_client_addresses(self) -> dict[str, str]:
        with self.store.read() as cur:
            cur.execute(
                self.store.dialect.sql(
                    "SELECT client_name, address FROM addresses WHERE address_type = %s ORDER BY client_name"
                ),
                (CLIENT,),
            )
            return {name: address for name, address in cur.fetchall()}

    def replace_client_addresses(self, mapping: dict[str, str]) -> int:
        """Atomically swap the whole client table for `mapping` (blank entries skipped)."""
        now = _now()
        items = [
            (CLIENT, name.strip(), address.strip(), now, now)
            for name, address in mapping.items()
            if name and name.strip() and address and address.strip()
        ]
        with self.store.transaction() as cur:
            cur.execute(self.store.dialect.sql("DELETE FROM addresses WHERE address_type = %s"), (CLIENT,))
            if items:
                cur.executemany(
                    self.store.dialect.sql(
                        "INSERT INTO addresses (address_type, client_name, address, created_at, updated_at) "
                        "VALUES (%s, %s, %s, %s, %s)"
                    ),
                    items,
                )
        logger.info("client addresses replaced count=%d", len(items))
        return len(items)
