from __future__ import annotations

"""Exception hierarchy for the invoice tracker.

Propagation policy:
- ParseError / GeocodeError / RouteError are caught at file or row scope and
  turned into an ErrorRecord plus a degraded result (skipped file, 0 km).
- ConfigError is raised pre-flight (missing credential, missing home address on
  an explicit refresh) and is never retried.
- StoreError is fatal for the operation that triggered it; the transaction has
  already been rolled back when callers see it.
"""

__all__ = [
    "InvoiceTrackerError",
    "ParseError",
    "ConfigError",
    "StoreError",
    "RoutingError",
    "GeocodeError",
    "RouteError",
    "RateLimitExceeded",
    "ProviderUnavailable",
]


class InvoiceTrackerError(Exception):
    """Base class for all errors raised by this package."""


class ParseError(InvoiceTrackerError):
    """Raised when a spreadsheet cannot be read or has no recognisable header row."""


class ConfigError(InvoiceTrackerError):
    """Raised for invalid configuration or a missing credential / home address."""


class StoreError(InvoiceTrackerError):
    """Raised when a store transaction fails (the transaction is rolled back)."""


class RoutingError(InvoiceTrackerError):
    """Base class for provider-side failures (row scoped, never fatal for a batch)."""


class GeocodeError(RoutingError):
    """Address empty or the provider returned no match."""


class RouteError(RoutingError):
    """The provider returned no route between two points."""


class RateLimitExceeded(RouteError):
    """HTTP 429 persisted after every retry attempt."""


class ProviderUnavailable(RoutingError):
    """Network-level failure after the retry budget was spent."""
