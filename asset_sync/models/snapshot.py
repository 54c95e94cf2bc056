from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from .config_models import TableRole
from .records import Record

"""SyncSnapshot: the unit of commit and persistence.

A snapshot is the products collection plus the three relation indexes, always
replaced as a whole. Relation indexes are read-only mappings of serial number
-> tuple of records in source-row order.
"""

__all__ = [
    "RelationIndex",
    "SyncSnapshot",
]

RelationIndex = Mapping[str, tuple[Record, ...]]

_RELATION_ROLES = (TableRole.REPAIRS, TableRole.MAINTENANCE, TableRole.SPECS)


def _freeze_index(index: Mapping[str, Sequence[Record]] | None) -> RelationIndex:
    return MappingProxyType({k: tuple(v) for k, v in (index or {}).items()})


@dataclass(frozen=True)
class SyncSnapshot:
    products: tuple[Record, ...] = ()
    repairs: RelationIndex = field(default_factory=dict)
    maintenance: RelationIndex = field(default_factory=dict)
    specs: RelationIndex = field(default_factory=dict)
    generation: int = 0  # refresh generation that produced it (0 = restored/empty)
    committed_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "products", tuple(self.products))
        object.__setattr__(self, "repairs", _freeze_index(self.repairs))
        object.__setattr__(self, "maintenance", _freeze_index(self.maintenance))
        object.__setattr__(self, "specs", _freeze_index(self.specs))

    @property
    def is_empty(self) -> bool:
        return not (self.products or self.repairs or self.maintenance or self.specs)

    def relation(self, role: TableRole) -> RelationIndex:
        if role is TableRole.REPAIRS:
            return self.repairs
        if role is TableRole.MAINTENANCE:
            return self.maintenance
        if role is TableRole.SPECS:
            return self.specs
        raise ValueError(f"{role.value} is not a relation table")

    def to_payloads(self, keys: Mapping[TableRole, str]) -> dict[str, Any]:
        """JSON-ready cache entries keyed by cache key."""
        payloads: dict[str, Any] = {
            keys[TableRole.PRODUCTS]: [p.to_dict() for p in self.products],
        }
        for role in _RELATION_ROLES:
            payloads[keys[role]] = {
                sn: [r.to_dict() for r in records]
                for sn, records in self.relation(role).items()
            }
        return payloads

    @classmethod
    def from_payloads(
        cls,
        payloads: Mapping[str, Any],
        keys: Mapping[TableRole, str],
        *,
        generation: int = 0,
    ) -> SyncSnapshot:
        """Rebuild a snapshot from cache entries.

        Raises:
            KeyError: an entry is missing
            ValueError: an entry has the wrong shape
        """
        raw_products = payloads[keys[TableRole.PRODUCTS]]
        if not isinstance(raw_products, list):
            raise ValueError("products entry must be a list")
        indexes: dict[TableRole, dict[str, list[Record]]] = {}
        for role in _RELATION_ROLES:
            raw_index = payloads[keys[role]]
            if not isinstance(raw_index, Mapping):
                raise ValueError(f"{role.value} entry must be an object")
            built: dict[str, list[Record]] = {}
            for sn, items in raw_index.items():
                if not isinstance(items, list):
                    raise ValueError(f"{role.value}[{sn}] must be a list")
                built[str(sn)] = [Record.from_dict(item) for item in items]
            indexes[role] = built
        return cls(
            products=tuple(Record.from_dict(p) for p in raw_products),
            repairs=indexes[TableRole.REPAIRS],
            maintenance=indexes[TableRole.MAINTENANCE],
            specs=indexes[TableRole.SPECS],
            generation=generation,
        )

    def to_json(self) -> str:
        """Deterministic serialization of the data (not the metadata)."""
        keys = {role: role.value for role in TableRole}
        return json.dumps(self.to_payloads(keys), ensure_ascii=False, sort_keys=True)
