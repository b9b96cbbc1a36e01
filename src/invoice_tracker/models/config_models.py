from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the lesson invoice tracker.

These are the typed results of config.loader.load_config(); defaults here are
the values applied when the YAML omits a key.
"""

DEFAULT_ORS_BASE_URL = "https://api.openrouteservice.org"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class RoutingConfig:
    """Routing provider (OpenRouteService) settings."""
    api_key: str | None = None  # 未設定でもロード可 (呼び出し時に ConfigError)
    base_url: str = DEFAULT_ORS_BASE_URL
    profile: str = "driving-car"
    min_interval_seconds: float = 1.5  # 全呼び出し共通の最小間隔
    max_attempts: int = 3
    timeout_seconds: float = 20.0


@dataclass(frozen=True)
class SpreadsheetConfig:
    """Location of the declared total amount cell (0-based; default J2)."""
    total_amount_row: int = 1
    total_amount_column: int = 9


@dataclass(frozen=True)
class TrackerConfig:
    """Root configuration object."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    spreadsheet: SpreadsheetConfig = field(default_factory=SpreadsheetConfig)
    logs_directory: str = "./logs"
