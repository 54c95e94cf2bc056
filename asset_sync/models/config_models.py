from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Config dataclasses for the product registry sync.

These are the typed counterparts of config/sync.yml. The loader in
asset_sync/config/loader.py validates the raw YAML and builds these objects;
everything downstream (client, builder, coordinator, cache) only sees them.
"""


class TableRole(Enum):
    """Logical role of one remote table in the joined model."""
    PRODUCTS = "products"
    REPAIRS = "repairs"
    MAINTENANCE = "maintenance"
    SPECS = "specs"


# Field ids coerced to numbers (membership test, not substring match)
DEFAULT_NUMERIC_FIELDS = frozenset(
    {"cost", "qty", "lastCost", "totalCost", "assetValue", "count", "repairCost"}
)
DEFAULT_PART_FIELDS = frozenset({"part1", "part2", "part3", "part4", "part5"})
DEFAULT_STATUS_FIELDS = frozenset({"status"})


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration for the postgres cache backend.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TableConfig:
    """One remote table: where to fetch it, where to cache it, what keys it."""
    role: TableRole
    sheet_name: str  # value of the ?sheet= query parameter
    cache_key: str  # CacheStore key for the built collection/index
    key_field: str  # products: sn / relations: productSn

    @property
    def is_primary(self) -> bool:
        return self.role is TableRole.PRODUCTS


DEFAULT_TABLES: tuple[TableConfig, ...] = (
    TableConfig(TableRole.PRODUCTS, "Products", "products", "sn"),
    TableConfig(TableRole.REPAIRS, "Product_Repairs", "repairsData", "productSn"),
    TableConfig(TableRole.MAINTENANCE, "Product_Maintenance", "maintenanceData", "productSn"),
    TableConfig(TableRole.SPECS, "Product_Specs", "specsData", "productSn"),
)


@dataclass(frozen=True)
class FieldRules:
    """Field-id sets driving row coercion."""
    numeric_fields: frozenset[str] = DEFAULT_NUMERIC_FIELDS
    part_fields: frozenset[str] = DEFAULT_PART_FIELDS
    status_fields: frozenset[str] = DEFAULT_STATUS_FIELDS
    status_default: str = "Active"
    part_sentinel: str = "-"  # placeholder cell meaning "no part"


@dataclass(frozen=True)
class CacheConfig:
    backend: str = "file"  # file | memory | postgres
    directory: str = ".cache/asset_sync"
    table: str = "asset_sync_cache"


@dataclass(frozen=True)
class SyncConfig:
    """Root configuration object for the sync process."""
    base_url: str
    tables: tuple[TableConfig, ...] = DEFAULT_TABLES
    header_mappings: dict[str, str] = field(default_factory=dict)  # extends the built-in table
    field_rules: FieldRules = field(default_factory=FieldRules)
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    timeout_seconds: float = 30.0
    error_log_directory: str = "./logs"

    def table(self, role: TableRole) -> TableConfig:
        for t in self.tables:
            if t.role is role:
                return t
        raise KeyError(role)

    @property
    def cache_keys(self) -> dict[TableRole, str]:
        return {t.role: t.cache_key for t in self.tables}
