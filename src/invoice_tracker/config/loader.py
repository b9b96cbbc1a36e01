from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..errors import ConfigError
from ..models.config_models import (
    DEFAULT_ORS_BASE_URL,
    DatabaseConfig,
    RoutingConfig,
    SpreadsheetConfig,
    TrackerConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/tracker.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for omitted keys
- Apply environment overrides (DATABASE_URL / PGDSN, ORS_API_KEY)
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "resolve_dsn",
]

DEFAULT_CONFIG_PATH = Path("config/tracker.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing / not valid JSON, or the config data
            fails validation (unknown keys, wrong types, out-of-range values).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> TrackerConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )

    rt_raw = data.get("routing") or {}
    # 環境変数 ORS_API_KEY が最優先 (.env 経由を想定)
    api_key = os.getenv("ORS_API_KEY") or rt_raw.get("api_key")
    routing = RoutingConfig(
        api_key=api_key.strip() if isinstance(api_key, str) and api_key.strip() else None,
        base_url=rt_raw.get("base_url", DEFAULT_ORS_BASE_URL).rstrip("/"),
        profile=rt_raw.get("profile", "driving-car"),
        min_interval_seconds=float(rt_raw.get("min_interval_seconds", 1.5)),
        max_attempts=int(rt_raw.get("max_attempts", 3)),
        timeout_seconds=float(rt_raw.get("timeout_seconds", 20)),
    )

    ss_raw = data.get("spreadsheet") or {}
    spreadsheet = SpreadsheetConfig(
        total_amount_row=ss_raw.get("total_amount_row", 1),
        total_amount_column=ss_raw.get("total_amount_column", 9),
    )

    return TrackerConfig(
        database=db,
        routing=routing,
        spreadsheet=spreadsheet,
        logs_directory=data.get("logs_directory", "./logs"),
    )


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve the final connection string.

    Priority:
        1. DATABASE_URL / PGDSN environment variables (.env loaded beforehand)
        2. database.dsn in the YAML
        3. individual PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE,
           falling back to the YAML database section
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn
