from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

"""Sync state and result models.

SyncState is the coordinator's state machine:
    IDLE -> FETCHING -> (COMMITTED | FALLBACK_APPLIED | FAILED)

SyncOutcome is what a single refresh() call reports back. SUPERSEDED is only
an outcome: a newer refresh started while this one was fetching, so its
results were discarded and the coordinator state belongs to the newer run.
"""


class SyncState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMMITTED = "committed"
    FALLBACK_APPLIED = "fallback_applied"
    FAILED = "failed"  # fetch failed and no cached snapshot existed


class SyncOutcome(Enum):
    COMMITTED = "committed"
    FALLBACK_APPLIED = "fallback_applied"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class TableStat:
    """Per-table result of one refresh."""
    table: str  # remote sheet name
    status: str  # success/failed
    records: int = 0  # built records (products) or indexed records (relations)
    error: str | None = None


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    generation: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    table_stats: tuple[TableStat, ...] = ()
    error: str | None = None

    @property
    def failed_tables(self) -> int:
        return sum(1 for s in self.table_stats if s.status == "failed")

    @property
    def ok(self) -> bool:
        return self.outcome is SyncOutcome.COMMITTED
