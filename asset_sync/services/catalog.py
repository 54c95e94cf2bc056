from __future__ import annotations

from ..models.config_models import TableRole
from ..models.records import Record
from ..models.snapshot import SyncSnapshot
from ..models.summaries import RepairSummary
from ..models.sync_result import SyncResult, SyncState
from .aggregates import sort_repairs_newest_first, summarize_repairs
from .coordinator import SyncCoordinator

"""Consumer-facing query API over the coordinator's current snapshot.

Every read goes through `coordinator.snapshot` at call time, so a query never
mixes two snapshots and always sees the latest committed one. Returned records
are immutable; relation lookups return tuples.
"""

__all__ = [
    "SEARCH_FIELDS",
    "AssetCatalog",
]

# Product fields matched by search_products()
SEARCH_FIELDS = ("productName", "sn", "category", "brand", "model", "location", "department")


class AssetCatalog:
    def __init__(self, coordinator: SyncCoordinator) -> None:
        self._coordinator = coordinator

    @property
    def loading(self) -> bool:
        return self._coordinator.loading

    @property
    def error(self) -> str | None:
        return self._coordinator.error

    @property
    def state(self) -> SyncState:
        return self._coordinator.state

    @property
    def snapshot(self) -> SyncSnapshot:
        return self._coordinator.snapshot

    async def refresh(self, *, force: bool = False) -> SyncResult:
        return await self._coordinator.refresh(force=force)

    def list_products(self) -> tuple[Record, ...]:
        return self._coordinator.snapshot.products

    def find_product(self, identifier: str | int) -> Record | None:
        """Product whose id or serial number equals `identifier` (as text)."""
        wanted = str(identifier).strip()
        if not wanted:
            return None
        for product in self._coordinator.snapshot.products:
            if product.text("id") == wanted or product.text("sn") == wanted:
                return product
        return None

    def search_products(self, term: str) -> list[Record]:
        """Case-insensitive substring search over SEARCH_FIELDS; blank term -> all."""
        products = self._coordinator.snapshot.products
        needle = term.strip().lower()
        if not needle:
            return list(products)
        return [
            p for p in products
            if any(needle in p.text(f).lower() for f in SEARCH_FIELDS)
        ]

    def _related(self, role: TableRole, sn: str) -> tuple[Record, ...]:
        return self._coordinator.snapshot.relation(role).get(str(sn).strip(), ())

    def get_repairs_by_sn(self, sn: str) -> tuple[Record, ...]:
        return self._related(TableRole.REPAIRS, sn)

    def get_maintenance_by_sn(self, sn: str) -> tuple[Record, ...]:
        return self._related(TableRole.MAINTENANCE, sn)

    def get_specs_by_sn(self, sn: str) -> tuple[Record, ...]:
        return self._related(TableRole.SPECS, sn)

    def get_repair_history(self, sn: str) -> list[Record]:
        """Repairs of one product, newest first."""
        return sort_repairs_newest_first(self.get_repairs_by_sn(sn))

    def get_repair_summary(self, sn: str) -> RepairSummary:
        return summarize_repairs(self.get_repairs_by_sn(sn))
