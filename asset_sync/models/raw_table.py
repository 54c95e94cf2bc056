from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

"""RawTable model: the wire shape of one remote table.

`data[0]` of the endpoint payload is the header row, `data[1:]` the data rows.
Cells arrive as JSON scalars (the backend emits numbers for numeric cells) and
are normalized to text here so every later stage works on strings only.
"""

__all__ = [
    "RawTable",
    "cell_text",
]


def cell_text(value: Any) -> str:
    """Normalize one JSON cell to the text a spreadsheet would display."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class RawTable:
    """Header row + data rows of one remote table.

    Rows are not padded: a row shorter than the header reads as blank for the
    missing columns.
    """
    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]

    @classmethod
    def from_data(cls, data: Sequence[Sequence[Any]]) -> RawTable:
        if not data:
            return cls(header=(), rows=())
        header = tuple(cell_text(c) for c in data[0])
        rows = tuple(tuple(cell_text(c) for c in row) for row in data[1:])
        return cls(header=header, rows=rows)

    def __len__(self) -> int:
        return len(self.rows)
