from __future__ import annotations

import logging
from collections.abc import Iterable

from ..models.records import Record

"""Relation indexing by product serial number.

The backend enforces no foreign keys, so the join is rebuilt in memory on every
successful sync:
- secondary tables become serial number -> records multimaps
- the products table is de-duplicated on serial number

Orphans (a relation key with no matching product) are legal and indexed like
any other key. Indexes are always rebuilt from scratch; there is no
incremental update path.
"""

__all__ = [
    "dedupe_by_key",
    "index_records",
]

logger = logging.getLogger(__name__)


def index_records(records: Iterable[Record], key_field: str) -> dict[str, tuple[Record, ...]]:
    """Group records by the stripped text of `key_field`.

    Parameters
    ----------
    records: records in source-row order
    key_field: foreign-key field id (productSn)

    Returns
    -------
    dict[str, tuple[Record, ...]]: key -> records, each bucket in source-row order.
        Records with a blank key are never indexed.
    """
    buckets: dict[str, list[Record]] = {}
    for record in records:
        key = record.text(key_field)
        if not key:
            continue
        buckets.setdefault(key, []).append(record)
    return {k: tuple(v) for k, v in buckets.items()}


def dedupe_by_key(records: Iterable[Record], key_field: str) -> list[Record]:
    """Drop records whose non-blank key was already seen (first occurrence wins).

    Records with a blank key are all kept.
    """
    seen: set[str] = set()
    kept: list[Record] = []
    for record in records:
        key = record.text(key_field)
        if key:
            if key in seen:
                logger.warning(f"duplicate {key_field}='{key}' dropped (first occurrence wins)")
                continue
            seen.add(key)
        kept.append(record)
    return kept
