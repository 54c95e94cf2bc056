from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Protocol

from ..cache.store import CacheMiss, CacheStore, load_snapshot, save_snapshot
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import SUMMARY_LEVEL
from ..models.config_models import DEFAULT_TABLES, FieldRules, SyncConfig, TableConfig, TableRole
from ..models.error_record import ErrorRecord
from ..models.raw_table import RawTable
from ..models.records import Record
from ..models.snapshot import SyncSnapshot
from ..models.sync_result import SyncOutcome, SyncResult, SyncState, TableStat
from ..sheets.field_mapper import FieldMapper
from ..sheets.table_builder import build_table
from .relation_index import index_records
from .summary import render_summary_line

"""Sync coordinator: fetch four tables, commit one coherent snapshot.

State machine: IDLE -> FETCHING -> (COMMITTED | FALLBACK_APPLIED | FAILED)

refresh():
1. joins the in-flight refresh if there is one (unless force=True)
2. bumps the generation counter
3. fetches the four tables concurrently (asyncio.gather)
4. all four ok -> build + index, swap the whole snapshot, persist (best effort)
5. any failure -> restore the cached snapshot (FALLBACK_APPLIED), or keep the
   current one when nothing is cached (FAILED)
6. a run whose generation is no longer the latest discards its results

Errors never leave refresh(); they end up in `error` and the returned SyncResult.
"""

__all__ = [
    "ProgressCallback",
    "SyncCoordinator",
    "TableFetcher",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, bool], None]


class TableFetcher(Protocol):
    def fetch_table(self, table: str) -> Awaitable[RawTable]: ...


class SyncCoordinator:
    """Single owner of the authoritative snapshot."""

    def __init__(
        self,
        fetcher: TableFetcher,
        store: CacheStore | None = None,
        *,
        tables: Iterable[TableConfig] = DEFAULT_TABLES,
        mapper: FieldMapper | None = None,
        rules: FieldRules | None = None,
        error_log: ErrorLogBuffer | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._tables = tuple(tables)
        roles = {t.role for t in self._tables}
        if roles != set(TableRole) or len(self._tables) != len(TableRole):
            raise ValueError(f"exactly one table per role required, got {[t.role.value for t in self._tables]}")
        self._keys = {t.role: t.cache_key for t in self._tables}
        self._mapper = mapper or FieldMapper()
        self._rules = rules or FieldRules()
        self._error_log = error_log
        self.progress = progress

        self._snapshot = SyncSnapshot()
        self._state = SyncState.IDLE
        self._error: str | None = None
        self._generation = 0
        self._inflight: asyncio.Task[SyncResult] | None = None

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        fetcher: TableFetcher,
        store: CacheStore | None = None,
        *,
        error_log: ErrorLogBuffer | None = None,
    ) -> SyncCoordinator:
        return cls(
            fetcher,
            store,
            tables=config.tables,
            mapper=FieldMapper(extra=config.header_mappings),
            rules=config.field_rules,
            error_log=error_log,
        )

    @property
    def snapshot(self) -> SyncSnapshot:
        """Last committed (or restored) snapshot."""
        return self._snapshot

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state is SyncState.FETCHING

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def generation(self) -> int:
        return self._generation

    def table_for(self, role: TableRole) -> TableConfig:
        for t in self._tables:
            if t.role is role:
                return t
        raise KeyError(role)

    def warm_start(self) -> bool:
        """Install the cached snapshot before the first refresh. Returns True if one was found."""
        if self._store is None or self._generation > 0:
            return False
        try:
            cached = self._load_cached()
        except CacheMiss as e:
            logger.info(f"warm start: {e}")
            return False
        self._snapshot = cached
        logger.info(f"warm start: restored {len(cached.products)} products from cache")
        return True

    async def refresh(self, *, force: bool = False) -> SyncResult:
        """Fetch all tables and commit a new snapshot (see module docstring).

        With force=True a new generation starts even while another refresh is in
        flight; the older one then discards its results.
        """
        if not force and self._inflight is not None and not self._inflight.done():
            logger.debug(f"refresh #{self._generation} in flight, joining it")
            return await asyncio.shield(self._inflight)

        self._generation += 1
        task = asyncio.ensure_future(self._run(self._generation))
        self._inflight = task
        # shield: a cancelled caller must not cancel the run shared with other callers
        return await asyncio.shield(task)

    async def _fetch(self, table: TableConfig) -> RawTable:
        try:
            raw = await self._fetcher.fetch_table(table.sheet_name)
        except Exception:
            self._notify(table.sheet_name, False)
            raise
        self._notify(table.sheet_name, True)
        return raw

    def _notify(self, table: str, success: bool) -> None:
        if self.progress is not None:
            self.progress(table, success)

    async def _run(self, generation: int) -> SyncResult:
        start = datetime.now(UTC)
        self._state = SyncState.FETCHING
        try:
            return await self._sync(generation, start)
        except Exception as e:
            logger.exception(f"refresh #{generation}: unexpected error")
            if generation != self._generation:
                return self._result(SyncOutcome.SUPERSEDED, generation, start, ())
            message = str(e) or type(e).__name__
            self._record_error("<SYNC>", "UNEXPECTED_ERROR", message)
            self._state = SyncState.FAILED
            self._error = f"no data available: {message}" if self._snapshot.is_empty else message
            return self._result(SyncOutcome.FAILED, generation, start, ())

    async def _sync(self, generation: int, start: datetime) -> SyncResult:
        logger.info(f"refresh #{generation}: fetching {len(self._tables)} tables")

        settled = await asyncio.gather(
            *(self._fetch(t) for t in self._tables), return_exceptions=True
        )

        failures: list[tuple[TableConfig, BaseException]] = []
        built: dict[TableRole, list[Record]] = {}
        for table, outcome in zip(self._tables, settled, strict=True):
            if isinstance(outcome, BaseException):
                failures.append((table, outcome))
        if not failures:
            for table, raw in zip(self._tables, settled, strict=True):
                try:
                    built[table.role] = build_table(raw, table, self._mapper, self._rules)
                except Exception as e:
                    logger.exception(f"{table.sheet_name}: failed building records")
                    failures.append((table, e))

        if generation != self._generation:
            logger.info(
                f"refresh #{generation}: superseded by #{self._generation}, discarding results"
            )
            return self._result(SyncOutcome.SUPERSEDED, generation, start, ())

        if failures:
            return self._apply_failure(generation, start, failures)
        return self._commit(generation, start, built)

    def _commit(
        self, generation: int, start: datetime, built: dict[TableRole, list[Record]]
    ) -> SyncResult:
        indexes = {
            role: index_records(built[role], self.table_for(role).key_field)
            for role in (TableRole.REPAIRS, TableRole.MAINTENANCE, TableRole.SPECS)
        }
        snapshot = SyncSnapshot(
            products=tuple(built[TableRole.PRODUCTS]),
            repairs=indexes[TableRole.REPAIRS],
            maintenance=indexes[TableRole.MAINTENANCE],
            specs=indexes[TableRole.SPECS],
            generation=generation,
            committed_at=datetime.now(UTC),
        )
        # single assignment: readers see the old snapshot or the new one, never a mix
        self._snapshot = snapshot
        self._state = SyncState.COMMITTED
        self._error = None

        if self._store is not None:
            try:
                save_snapshot(self._store, snapshot, self._keys)
            except Exception as e:
                logger.warning(f"refresh #{generation}: cache write failed (ignored): {e}")
                self._record_error("<CACHE>", "CACHE_WRITE_ERROR", str(e))

        stats = []
        for table in self._tables:
            if table.is_primary:
                count = len(snapshot.products)
            else:
                count = sum(len(v) for v in snapshot.relation(table.role).values())
            stats.append(TableStat(table=table.sheet_name, status="success", records=count))
        return self._result(SyncOutcome.COMMITTED, generation, start, tuple(stats))

    def _apply_failure(
        self,
        generation: int,
        start: datetime,
        failures: list[tuple[TableConfig, BaseException]],
    ) -> SyncResult:
        failed = {t.role: e for t, e in failures}
        stats = []
        for table in self._tables:
            exc = failed.get(table.role)
            if exc is None:
                stats.append(TableStat(table=table.sheet_name, status="success"))
                continue
            error_type = getattr(exc, "error_type", "UNEXPECTED_ERROR")
            logger.error(f"refresh #{generation}: {table.sheet_name} failed ({error_type}): {exc}")
            self._record_error(table.sheet_name, error_type, str(exc))
            stats.append(TableStat(table=table.sheet_name, status="failed", error=str(exc)))
        message = "; ".join(str(e) for _, e in failures)

        try:
            cached = self._load_cached()
        except CacheMiss as miss:
            logger.warning(f"refresh #{generation}: no cached snapshot to fall back to: {miss}")
            self._record_error("<CACHE>", "CACHE_MISS", str(miss))
            self._state = SyncState.FAILED
            if self._snapshot.is_empty:
                self._error = f"no data available: {message}"
            else:
                self._error = message
            return self._result(SyncOutcome.FAILED, generation, start, tuple(stats))

        self._snapshot = cached
        self._state = SyncState.FALLBACK_APPLIED
        self._error = message
        logger.warning(
            f"refresh #{generation}: using cached snapshot ({len(cached.products)} products)"
        )
        return self._result(SyncOutcome.FALLBACK_APPLIED, generation, start, tuple(stats))

    def _load_cached(self) -> SyncSnapshot:
        if self._store is None:
            raise CacheMiss("no cache store configured")
        try:
            return load_snapshot(self._store, self._keys)
        except CacheMiss:
            raise
        except Exception as e:
            logger.warning(f"cache read failed: {e}")
            raise CacheMiss(f"cache read failed: {e}") from e

    def _record_error(self, table: str, error_type: str, message: str) -> None:
        if self._error_log is not None:
            self._error_log.append(ErrorRecord.create(table, -1, error_type, message))

    def _result(
        self,
        outcome: SyncOutcome,
        generation: int,
        start: datetime,
        stats: tuple[TableStat, ...],
    ) -> SyncResult:
        end = datetime.now(UTC)
        result = SyncResult(
            outcome=outcome,
            generation=generation,
            start_time=start,
            end_time=end,
            elapsed_seconds=(end - start).total_seconds(),
            table_stats=stats,
            error=None if outcome is SyncOutcome.SUPERSEDED else self._error,
        )
        if outcome is SyncOutcome.SUPERSEDED:
            return result

        line = render_summary_line(result, self._snapshot)
        logger.log(SUMMARY_LEVEL, line.removeprefix("SUMMARY "))
        if self._error_log is not None:
            try:
                self._error_log.flush()
            except OSError as e:
                # Don't fail the refresh if the error log can't be written
                logger.warning(f"error log flush failed: {e}")
        return result
