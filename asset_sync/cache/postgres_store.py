from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2.extras import execute_values

from .store import CacheStore, CacheStoreError

"""PostgreSQL-backed cache store.

Entries live in one table:
    key text primary key, payload text, updated_at timestamptz

save_many() upserts all entries with a single psycopg2.extras.execute_values
statement in one transaction, so a snapshot's four entries are replaced
together or not at all.
"""

__all__ = [
    "PostgresCacheStore",
    "WriteMetrics",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteMetrics:
    """Timing of one upsert batch."""
    entries: int
    payload_bytes: int
    elapsed_seconds: float


class PostgresCacheStore(CacheStore):
    """Cache entries in a PostgreSQL table via a psycopg2 connection.

    Parameters
    ----------
    connection: open psycopg2 connection (autocommit off)
    table: cache table name (alphanumeric and underscores only)
    metrics_callback: optional hook receiving WriteMetrics after each upsert
    """

    def __init__(
        self,
        connection: Any,
        table: str = "asset_sync_cache",
        metrics_callback: Callable[[WriteMetrics], None] | None = None,
    ) -> None:
        if not table.replace("_", "").isalnum():
            raise ValueError(f"invalid table name: {table!r}")
        self._conn = connection
        self.table = table
        self._metrics_callback = metrics_callback

    def _rollback(self) -> None:
        # a dropped connection fails the rollback too; the original error is what matters
        try:
            self._conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"rollback failed on {self.table}: {e}")

    def ensure_table(self) -> None:
        sql = (
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            "key text PRIMARY KEY, "
            "payload text NOT NULL, "
            "updated_at timestamptz NOT NULL DEFAULT now())"
        )
        try:
            with self._conn.cursor() as cur:
                cur.execute(sql)
            self._conn.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise CacheStoreError(f"failed creating {self.table}: {e}") from e

    def save(self, key: str, value: Any) -> None:
        self.save_many({key: value})

    def save_many(self, entries: Mapping[str, Any]) -> None:
        try:
            rows = [(k, json.dumps(v, ensure_ascii=False)) for k, v in entries.items()]
        except (TypeError, ValueError) as e:
            raise CacheStoreError(f"cannot serialize cache entries: {e}") from e
        if not rows:
            return

        sql = (
            f"INSERT INTO {self.table} (key, payload) VALUES %s "
            "ON CONFLICT (key) DO UPDATE SET payload = EXCLUDED.payload, updated_at = now()"
        )
        start = time.time()
        try:
            with self._conn.cursor() as cur:
                execute_values(cur, sql, rows)
            self._conn.commit()
        except psycopg2.Error as e:
            self._rollback()
            raise CacheStoreError(f"failed upserting into {self.table}: {e}") from e
        elapsed = time.time() - start
        logger.debug(f"cache upsert table={self.table} entries={len(rows)} elapsed={elapsed:.3f}s")
        if self._metrics_callback is not None:
            self._metrics_callback(WriteMetrics(
                entries=len(rows),
                payload_bytes=sum(len(p) for _, p in rows),
                elapsed_seconds=elapsed,
            ))

    def load(self, key: str) -> Any | None:
        try:
            with self._conn.cursor() as cur:
                cur.execute(f"SELECT payload FROM {self.table} WHERE key = %s", (key,))
                row = cur.fetchone()
        except psycopg2.Error as e:
            self._rollback()
            logger.warning(f"cache read '{key}' failed, treating as absent: {e}")
            return None
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            logger.warning(f"cache entry '{key}' unreadable, treating as absent: {e}")
            return None
