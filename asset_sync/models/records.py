from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

"""Record model: one typed row of any of the four tables.

Products, repairs, maintenance entries and spec entries share this shape; which
fields exist depends on the headers the remote table exposes. Records are
read-only once built so snapshot consumers can never mutate shared state.
"""

__all__ = [
    "PART_NAMES_FIELD",
    "Record",
]

PART_NAMES_FIELD = "partNames"


class Record(Mapping[str, Any]):
    """Immutable mapping of field id -> typed value."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any]) -> None:
        data = dict(values)
        if PART_NAMES_FIELD in data:
            data[PART_NAMES_FIELD] = tuple(data[PART_NAMES_FIELD])
        self._values = data

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Record({self._values!r})"

    @property
    def part_names(self) -> tuple[str, ...]:
        return self._values.get(PART_NAMES_FIELD, ())

    def text(self, field_id: str) -> str:
        """Stripped text of a field; blank for absent fields."""
        value = self._values.get(field_id)
        if value is None:
            return ""
        return str(value).strip()

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready copy (partNames as list)."""
        data = dict(self._values)
        if PART_NAMES_FIELD in data:
            data[PART_NAMES_FIELD] = list(data[PART_NAMES_FIELD])
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Record:
        if not isinstance(data, Mapping):
            raise ValueError(f"record must be an object, got {type(data).__name__}")
        return cls(data)
