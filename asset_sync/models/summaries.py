from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Derived per-product aggregates. Computed on demand, never stored."""

__all__ = [
    "RepairSummary",
]


@dataclass(frozen=True)
class RepairSummary:
    repair_count: int = 0
    total_repair_cost: float = 0
    last_repair_date: str | None = None  # raw date text of the most recent repair
    last_repair_cost: float = 0
    part_changed: str = "No"

    def to_dict(self) -> dict[str, Any]:
        return {
            "repairCount": self.repair_count,
            "totalRepairCost": self.total_repair_cost,
            "lastRepairDate": self.last_repair_date,
            "lastRepairCost": self.last_repair_cost,
            "partChanged": self.part_changed,
        }
