from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..db.addresses import AddressRepository
from ..db.connection import db_connection
from ..db.store import RecordStore
from ..errors import ParseError, RoutingError, StoreError
from ..excel.dates import parse_date_value
from ..excel.reader import parse_spreadsheet_file
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import enable_debug, log_summary, setup_logging
from ..models.config_models import TrackerConfig
from ..models.upload import Resolution, UploadOutcome, UploadState
from ..routing.client import GeoRoutingClient
from ..services.distance_cache import (
    DistanceCache,
    DistanceService,
    MemoryDistanceTier,
    PersistentDistanceTier,
)
from ..services.export import export_rows, format_day_first
from ..services.filters import KILOMETERS_COLUMN, FilterState, apply_filters, sort_rows
from ..services.routes import DayRouteCalculator
from ..services.summary import render_route_summary, render_upload_summary
from ..services.uploads import UploadHandler

"""CLI entrypoint.

    python -m invoice_tracker.cli upload jan.xlsx feb.xlsx --on-conflict merge
    python -m invoice_tracker.cli routes
    python -m invoice_tracker.cli list --client Alice --sort Kilometers --desc

Exit codes: 0 success, 1 fatal (config / store / nothing usable), 2 partial
failure (some files failed to parse, or some route legs degraded).
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

_RESOLUTION_KEYS = {"r": Resolution.REPLACE, "m": Resolution.MERGE, "c": Resolution.CANCEL}


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書き (DATABASE_URL / ORS_API_KEY 最優先)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--date", help="Lesson date (D/M/YYYY or YYYY-MM-DD)")
    p.add_argument("--client", help="Exact client name")
    p.add_argument("--sort", help="Column to sort by (Kilometers allowed)")
    p.add_argument("--desc", action="store_true", help="Sort descending")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="invoice-tracker", description="Lesson invoice & travel distance tracker")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    up = sub.add_parser("upload", help="Upload invoice spreadsheets")
    up.add_argument("files", nargs="+", type=Path)
    up.add_argument(
        "--on-conflict",
        choices=["ask", "replace", "merge", "cancel"],
        default="ask",
        help="What to do when a file with the same name but different content exists",
    )

    ls = sub.add_parser("list", help="List stored invoice rows")
    _add_filter_args(ls)

    sub.add_parser("routes", help="Compute per-day route kilometers for all stored rows")

    rf = sub.add_parser("refresh", help="Recompute one row's kilometers ignoring caches")
    rf.add_argument("row_id", type=int)

    ex = sub.add_parser("export", help="Export rows (+ Kilometers) to .xlsx")
    ex.add_argument("output", type=Path)
    _add_filter_args(ex)

    dl = sub.add_parser("delete", help="Delete one stored file and its rows")
    dl.add_argument("file_id", type=int)

    sub.add_parser("clear", help="Delete every stored file")

    ad = sub.add_parser("address", help="Manage home / client addresses")
    ad_sub = ad.add_subparsers(dest="address_command", required=True)
    home = ad_sub.add_parser("set-home")
    home.add_argument("address")
    client = ad_sub.add_parser("set-client")
    client.add_argument("name")
    client.add_argument("address")
    rm = ad_sub.add_parser("remove")
    rm.add_argument("name")
    ad_sub.add_parser("list")

    ca = sub.add_parser("cache", help="Inspect / clear the distance cache")
    ca.add_argument("cache_command", choices=["list", "clear"])

    ins = sub.add_parser("inspect", help="Print the parsed header & first rows of a spreadsheet")
    ins.add_argument("file", type=Path)
    return p.parse_args(argv)


@contextmanager
def _open_store(cfg: TrackerConfig) -> Iterator[RecordStore]:
    with db_connection(cfg.database) as (conn, dialect):
        store = RecordStore(conn, dialect)
        store.initialize()
        yield store


def _distance_service(cfg: TrackerConfig, store: RecordStore) -> DistanceService:
    client = GeoRoutingClient(cfg.routing)
    cache = DistanceCache([MemoryDistanceTier(), PersistentDistanceTier(store)])
    return DistanceService(client, cache)


def _filter_state(args: argparse.Namespace) -> FilterState:
    lesson_date: date | None = None
    if args.date:
        parsed = parse_date_value(args.date)
        if not isinstance(parsed, datetime):
            raise ConfigError(f"invalid --date: {args.date}")
        lesson_date = parsed.date()
    return FilterState(lesson_date=lesson_date, client_name=args.client)


def _ask_resolution(outcome: UploadOutcome) -> Resolution:
    diff = outcome.diff
    print(f"{outcome.filename}: a different version is already stored")
    if diff is not None:
        print(
            f"  added={len(diff.added)} removed={len(diff.removed)} "
            f"modified={len(diff.modified)} unchanged={diff.unchanged_count}"
        )
    if not sys.stdin.isatty():
        print("  non-interactive input; cancelling (use --on-conflict replace|merge)")
        return Resolution.CANCEL
    while True:
        answer = input("  [r]eplace / [m]erge / [c]ancel? ").strip().lower()[:1]
        if answer in _RESOLUTION_KEYS:
            return _RESOLUTION_KEYS[answer]


def _cmd_upload(args: argparse.Namespace, cfg: TrackerConfig, store: RecordStore, errors: ErrorLogBuffer) -> int:
    logger = setup_logging()
    missing = [p for p in args.files if not p.is_file()]
    if missing:
        logger.error(f"file not found: {', '.join(str(p) for p in missing)}")
        return EXIT_FATAL

    handler = UploadHandler(store, cfg.spreadsheet)
    batch = handler.ingest_many((p.name, p.read_bytes()) for p in args.files)

    outcomes: list[UploadOutcome] = []
    for outcome in batch.outcomes:
        if outcome.state is UploadState.CONFLICT_PENDING and outcome.pending is not None:
            if args.on_conflict == "ask":
                resolution = _ask_resolution(outcome)
            else:
                resolution = Resolution(args.on_conflict)
            outcome = handler.resolve(outcome.pending, resolution)
        level = logger.error if outcome.state is UploadState.FAILED else logger.info
        level(f"{outcome.filename}: {outcome.state.value} {outcome.error or outcome.message}")
        outcomes.append(outcome)

    batch = replace(batch, outcomes=outcomes)
    errors.extend(batch.errors)
    log_summary(render_upload_summary(batch))

    if batch.failed_files == len(outcomes):
        return EXIT_FATAL
    if batch.failed_files:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _selected_rows(args: argparse.Namespace, store: RecordStore):
    ledger = store.all_rows()
    rows = apply_filters(ledger.rows, _filter_state(args))
    if args.sort:
        rows = sort_rows(rows, args.sort, descending=args.desc)
    return ledger, rows


def _display(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return format_day_first(value)
    return value


def _cmd_list(args: argparse.Namespace, store: RecordStore) -> int:
    ledger, rows = _selected_rows(args, store)
    frame = pd.DataFrame.from_records(
        [
            {"ID": r.row_id, **{c: _display(r.get(c)) for c in ledger.columns}, KILOMETERS_COLUMN: r.kilometers}
            for r in rows
        ],
        columns=["ID", *ledger.columns, KILOMETERS_COLUMN],
    )
    print(frame.to_string(index=False) if len(frame) else "(no rows)")
    print(f"Showing {len(rows)} of {len(ledger.rows)} rows | total amount ${ledger.total_amount:,.2f}")
    return EXIT_SUCCESS_ALL


def _cmd_routes(cfg: TrackerConfig, store: RecordStore, errors: ErrorLogBuffer) -> int:
    ledger = store.all_rows()
    calculator = DayRouteCalculator(AddressRepository(store), _distance_service(cfg, store), store)
    result = calculator.compute_routes(ledger.rows)
    errors.extend(result.warnings)
    print(f"Total kilometers: {result.total_kilometers:.1f} km")
    log_summary(render_route_summary(result))
    return EXIT_PARTIAL_FAILURE if result.degraded else EXIT_SUCCESS_ALL


def _cmd_refresh(args: argparse.Namespace, cfg: TrackerConfig, store: RecordStore) -> int:
    logger = setup_logging()
    row = store.get_row(args.row_id)
    if row is None:
        logger.error(f"row not found: {args.row_id}")
        return EXIT_FATAL
    calculator = DayRouteCalculator(AddressRepository(store), _distance_service(cfg, store), store)
    try:
        refreshed = calculator.refresh_row(row)
    except RoutingError as e:
        logger.error(f"refresh failed: {e}")
        return EXIT_FATAL
    print(f"row {args.row_id}: {refreshed.kilometers:.1f} km")
    return EXIT_SUCCESS_ALL


def _cmd_export(args: argparse.Namespace, store: RecordStore) -> int:
    ledger, rows = _selected_rows(args, store)
    path = export_rows(rows, ledger.columns, args.output)
    setup_logging().info(f"exported {len(rows)} rows to {path}")
    return EXIT_SUCCESS_ALL


def _cmd_address(args: argparse.Namespace, store: RecordStore) -> int:
    repo = AddressRepository(store)
    if args.address_command == "set-home":
        repo.set_home_address(args.address)
    elif args.address_command == "set-client":
        repo.set_client_address(args.name, args.address)
    elif args.address_command == "remove":
        if not repo.remove_client_address(args.name):
            setup_logging().warning(f"no address stored for client {args.name!r}")
            return EXIT_PARTIAL_FAILURE
    else:
        print(f"home: {repo.get_home_address() or '(not set)'}")
        for name, address in repo.all_client_addresses().items():
            print(f"{name}: {address}")
    return EXIT_SUCCESS_ALL


def _cmd_cache(args: argparse.Namespace, store: RecordStore) -> int:
    if args.cache_command == "clear":
        DistanceCache([MemoryDistanceTier(), PersistentDistanceTier(store)]).clear()
        setup_logging().info("distance cache cleared")
        return EXIT_SUCCESS_ALL
    for origin, destination, km, created_at in store.cached_distances():
        print(f"{origin} -> {destination}: {km:.3f} km ({created_at})")
    return EXIT_SUCCESS_ALL


def _cmd_inspect(args: argparse.Namespace, cfg: TrackerConfig) -> int:
    try:
        parsed = parse_spreadsheet_file(args.file, cfg.spreadsheet)
    except ParseError as e:
        setup_logging().error(f"inspect: {e}")
        return EXIT_FATAL
    data = parsed.to_json_dict()
    print(f"FILE: {args.file.name} cols={parsed.columns}")
    print(f"  rows={len(parsed.rows)} total_amount={parsed.total_amount}")
    print("  sample_rows=", json.dumps(data["rows"][:3], ensure_ascii=False, default=str))
    return EXIT_SUCCESS_ALL


def _dispatch(args: argparse.Namespace, cfg: TrackerConfig, errors: ErrorLogBuffer) -> int:
    if args.command == "inspect":
        return _cmd_inspect(args, cfg)

    with _open_store(cfg) as store:
        if args.command == "upload":
            return _cmd_upload(args, cfg, store, errors)
        if args.command == "list":
            return _cmd_list(args, store)
        if args.command == "routes":
            return _cmd_routes(cfg, store, errors)
        if args.command == "refresh":
            return _cmd_refresh(args, cfg, store)
        if args.command == "export":
            return _cmd_export(args, store)
        if args.command == "delete":
            store.delete(args.file_id)
            return EXIT_SUCCESS_ALL
        if args.command == "clear":
            for f in store.all_files():
                store.delete(f.id)
            setup_logging().info("all stored files deleted")
            return EXIT_SUCCESS_ALL
        if args.command == "address":
            return _cmd_address(args, store)
        return _cmd_cache(args, store)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        enable_debug()

    errors = ErrorLogBuffer(cfg.logs_directory)
    try:
        return _dispatch(args, cfg, errors)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    finally:
        written = errors.flush()
        if written is not None:
            logger.info(f"error log written: {written}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
