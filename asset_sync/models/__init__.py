"""Domain models for the product registry sync.

Configuration, wire, record, snapshot and result types shared by the sheet
builder, the coordinator and the cache backends.
"""

from .config_models import (
    CacheConfig,
    DatabaseConfig,
    FieldRules,
    SyncConfig,
    TableConfig,
    TableRole,
)
from .raw_table import RawTable
from .records import Record
from .snapshot import SyncSnapshot
from .summaries import RepairSummary
from .sync_result import SyncOutcome, SyncResult, SyncState, TableStat

__all__ = [
    # Configuration models
    "CacheConfig",
    "DatabaseConfig",
    "FieldRules",
    "SyncConfig",
    "TableConfig",
    "TableRole",
    # Data models
    "RawTable",
    "Record",
    "RepairSummary",
    "SyncSnapshot",
    # Sync results
    "SyncOutcome",
    "SyncResult",
    "SyncState",
    "TableStat",
]
