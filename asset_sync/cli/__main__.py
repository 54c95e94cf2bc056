from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from asset_sync.cache.store import CacheStore, CacheStoreError, FileCacheStore, MemoryCacheStore
from asset_sync.client.sheets_client import SheetsClient, SheetsClientError
from asset_sync.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from asset_sync.logging.error_log import ErrorLogBuffer
from asset_sync.logging.init import setup_logging
from asset_sync.models.config_models import SyncConfig
from asset_sync.models.sync_result import SyncOutcome
from asset_sync.services.catalog import AssetCatalog
from asset_sync.services.coordinator import SyncCoordinator
from asset_sync.services.progress import SyncProgress
from asset_sync.sheets.field_mapper import FieldMapper
from asset_sync.sheets.table_builder import build_table

"""CLI entrypoint: `python -m asset_sync.cli`.

Flow:
- load .env, then config/sync.yml
- open the configured cache store (postgres falls back to the file store when
  the database is unreachable)
- warm start from cache, run one refresh, log the SUMMARY line
- optionally print one product with its relations as JSON
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_FALLBACK = 2


@contextmanager
def _db_connection(cfg: SyncConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection for the postgres cache backend.

    Resolution order:
        1. DATABASE_URL / PGDSN (environment, .env already loaded) or database.dsn
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the database section of the config file
    """
    import psycopg2

    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False
    try:
        yield conn
    finally:
        conn.close()


def _open_store(cfg: SyncConfig, stack: ExitStack) -> CacheStore:
    logger = logging.getLogger("asset_sync")
    backend = cfg.cache.backend
    if backend == "memory":
        return MemoryCacheStore()
    if backend == "postgres":
        import psycopg2

        from asset_sync.cache.postgres_store import PostgresCacheStore

        try:
            conn = stack.enter_context(_db_connection(cfg))
            store = PostgresCacheStore(conn, cfg.cache.table)
            store.ensure_table()
            return store
        except (psycopg2.Error, CacheStoreError) as e:
            logger.warning(f"postgres cache unavailable -> falling back to file cache: {e}")
    return FileCacheStore(cfg.cache.directory)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; .env values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Product registry sync (spreadsheet backend -> cached model)")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to sync.yml")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print table headers & first rows then exit")
    p.add_argument("--product", metavar="SN", help="Print one product (id or serial) with its relations")
    return p.parse_args(argv)


async def _inspect_data(cfg: SyncConfig, base_url: str) -> int:
    mapper = FieldMapper(extra=cfg.header_mappings)
    async with SheetsClient(base_url, timeout_seconds=cfg.timeout_seconds) as client:
        for table in cfg.tables:
            print(f"TABLE: {table.sheet_name}")
            try:
                raw = await client.fetch_table(table.sheet_name)
            except SheetsClientError as e:
                print(f"  fetch_error: {e}")
                continue
            fields = mapper.map_all(raw.header)
            print(f"  headers={list(raw.header)}")
            print(f"  fields={fields}")
            records = build_table(raw, table, mapper, cfg.field_rules)
            print(f"  rows={len(raw.rows)} records={len(records)}")
            print("    sample_records=", [r.to_dict() for r in records[:3]])
    return EXIT_SUCCESS


def _print_product(catalog: AssetCatalog, identifier: str) -> int:
    product = catalog.find_product(identifier)
    if product is None:
        logging.getLogger("asset_sync").error(f"product not found: {identifier}")
        return EXIT_FATAL
    sn = product.text("sn")
    out = {
        "product": product.to_dict(),
        "repairs": [r.to_dict() for r in catalog.get_repair_history(sn)],
        "maintenance": [m.to_dict() for m in catalog.get_maintenance_by_sn(sn)],
        "specs": [s.to_dict() for s in catalog.get_specs_by_sn(sn)],
        "repairSummary": catalog.get_repair_summary(sn).to_dict(),
    }
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return EXIT_SUCCESS


async def _run_sync(cfg: SyncConfig, base_url: str, args: argparse.Namespace) -> int:
    with ExitStack() as stack:
        store = _open_store(cfg, stack)
        async with SheetsClient(base_url, timeout_seconds=cfg.timeout_seconds) as client:
            coordinator = SyncCoordinator.from_config(
                cfg, client, store, error_log=ErrorLogBuffer(cfg.error_log_directory)
            )
            coordinator.warm_start()
            with SyncProgress(len(cfg.tables)) as progress:
                coordinator.progress = progress
                result = await coordinator.refresh()
            coordinator.progress = None

    catalog = AssetCatalog(coordinator)
    if result.outcome is SyncOutcome.FAILED and catalog.snapshot.is_empty:
        logging.getLogger("asset_sync").error(f"sync: {result.error}")
        return EXIT_FATAL
    if args.product:
        code = _print_product(catalog, args.product)
        if code != EXIT_SUCCESS:
            return code
    if result.outcome is SyncOutcome.COMMITTED:
        return EXIT_SUCCESS
    return EXIT_FALLBACK


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when no list was given (tests call main([]))
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        for h in logger.handlers:
            h.setLevel("DEBUG")
        logger.setLevel("DEBUG")
        logger.debug("debug mode enabled")

    base_url = os.getenv("SHEETS_BASE_URL") or cfg.base_url
    logger.info(f"Syncing {len(cfg.tables)} tables from: {base_url}")

    if args.inspect_data:
        return asyncio.run(_inspect_data(cfg, base_url))
    return asyncio.run(_run_sync(cfg, base_url, args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
