from __future__ import annotations

from ..models.snapshot import SyncSnapshot
from ..models.sync_result import SyncResult

"""SUMMARY line rendering for a settled refresh.

Format:
SUMMARY outcome={outcome} generation={n} products={n} repairs={n} maintenance={n}
specs={n} failed_tables={n} elapsed_sec={elapsed}

Relation counts are record counts (not key counts) of the snapshot that is
visible after the refresh.
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: SyncResult, snapshot: SyncSnapshot) -> str:
    """Render the SUMMARY line for one refresh.

    >>> from datetime import datetime, timezone
    >>> from asset_sync.models.sync_result import SyncOutcome
    >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> r = SyncResult(SyncOutcome.COMMITTED, 1, t, t, 2.0)
    >>> render_summary_line(r, SyncSnapshot())
    'SUMMARY outcome=committed generation=1 products=0 repairs=0 maintenance=0 specs=0 failed_tables=0 elapsed_sec=2'
    """
    def count(index) -> int:
        return sum(len(v) for v in index.values())

    return (
        f"SUMMARY outcome={result.outcome.value} "
        f"generation={result.generation} "
        f"products={len(snapshot.products)} "
        f"repairs={count(snapshot.repairs)} "
        f"maintenance={count(snapshot.maintenance)} "
        f"specs={count(snapshot.specs)} "
        f"failed_tables={result.failed_tables} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
