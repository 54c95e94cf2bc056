from __future__ import annotations

import logging

import pandas as pd

from ..models.config_models import FieldRules, TableConfig
from ..models.raw_table import RawTable
from ..models.records import Record
from ..services.relation_index import dedupe_by_key
from .coercion import coerce_row
from .field_mapper import FieldMapper

"""Table snapshot builder: RawTable -> ordered list of typed Records.

The header row drives everything: each header cell is mapped to a field id, and
each data row is zipped against those ids and coerced. Steps:
1. Frame the payload (rows padded to header width, all cells text)
2. Skip rows whose cells are all blank
3. Relation tables: drop rows whose key cell is blank or echoes the header label
4. Coerce the remaining rows; products also get id/rowIndex
5. Products: first occurrence of a serial number wins
"""

__all__ = [
    "build_table",
    "frame_table",
    "key_column",
]

logger = logging.getLogger(__name__)


def frame_table(raw: RawTable) -> pd.DataFrame:
    """Positional DataFrame of the data rows, padded/truncated to header width.

    Columns are positions (0..n-1) rather than header labels since headers may be
    blank or repeated.
    """
    width = len(raw.header)
    padded = [list(row[:width]) + [""] * (width - len(row)) for row in raw.rows]
    return pd.DataFrame(padded, columns=list(range(width)), dtype=object)


def key_column(header: tuple[str, ...], field_ids: list[str], table: TableConfig) -> int:
    """Index of the column holding the table's key field.

    First column whose header maps to the key field; column 0 when none does.
    """
    for i, fid in enumerate(field_ids):
        if fid == table.key_field:
            return i
    logger.warning(
        f"{table.sheet_name}: no header maps to '{table.key_field}' "
        f"(headers={list(header)}), using column 0 as key"
    )
    return 0


def build_table(
    raw: RawTable,
    table: TableConfig,
    mapper: FieldMapper | None = None,
    rules: FieldRules | None = None,
) -> list[Record]:
    """Build the ordered records of one remote table."""
    mapper = mapper or FieldMapper()
    rules = rules or FieldRules()
    if not raw.header:
        logger.warning(f"{table.sheet_name}: empty payload (no header row)")
        return []

    field_ids = mapper.map_all(raw.header)
    key_col: int | None = None
    key_mapped = True
    if not table.is_primary:
        key_col = key_column(raw.header, field_ids, table)
        key_mapped = field_ids[key_col] == table.key_field
        key_label = raw.header[key_col].strip()

    records: list[Record] = []
    dropped = 0
    df = frame_table(raw)
    for index, cells in enumerate(df.itertuples(index=False, name=None)):
        if all(not str(c).strip() for c in cells):
            continue
        if key_col is not None:
            key = str(cells[key_col]).strip()
            # blank key or header row echoed into the data section
            if not key or key == key_label:
                dropped += 1
                continue
        values = coerce_row(zip(field_ids, cells, strict=False), rules)
        if key_col is not None and not key_mapped:
            values[table.key_field] = key
        if table.is_primary:
            values["id"] = index + 1
            values["rowIndex"] = index + 2
        records.append(Record(values))

    if table.is_primary:
        records = dedupe_by_key(records, table.key_field)
    logger.debug(
        f"{table.sheet_name}: built {len(records)} records from {len(raw.rows)} rows "
        f"(dropped_keyless={dropped})"
    )
    return records
