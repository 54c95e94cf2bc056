from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from ..models.records import Record
from ..models.summaries import RepairSummary
from ..sheets.coercion import parse_number

"""Repair aggregates, computed on demand from one product's repair records."""

__all__ = [
    "effective_repair_date",
    "sort_repairs_newest_first",
    "summarize_repairs",
]


def effective_repair_date(record: Record) -> str:
    """Repair date text, falling back to the logged (created) date."""
    return record.text("repairDate") or record.text("createdDate")


def _sort_key(record: Record) -> tuple[int, int]:
    text = effective_repair_date(record)
    if text:
        ts = pd.to_datetime(text, utc=True, errors="coerce")
        if not pd.isna(ts):
            return (1, ts.value)
    # absent/unparseable dates sort after every real date
    return (0, 0)


def sort_repairs_newest_first(records: Sequence[Record]) -> list[Record]:
    """Copy of `records` sorted newest first; equal dates keep their original order."""
    return sorted(records, key=_sort_key, reverse=True)


def summarize_repairs(records: Sequence[Record]) -> RepairSummary:
    """Summarize a product's repairs.

    >>> summarize_repairs([]).to_dict()["lastRepairDate"] is None
    True
    """
    if not records:
        return RepairSummary()

    latest = sort_repairs_newest_first(records)[0]
    total = sum(parse_number(r.get("repairCost")) for r in records)
    return RepairSummary(
        repair_count=len(records),
        total_repair_cost=total,
        last_repair_date=effective_repair_date(latest) or None,
        last_repair_cost=parse_number(latest.get("repairCost")),
        part_changed=latest.text("partChanged") or "No",
    )
