from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for sync error logging.

One JSON line per failure. `row=-1` marks table-level errors (transport,
schema, cache) where no specific row applies.

The key set is fixed: timestamp, table, row, error_type, message.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        table: remote table (sheet) name, or "<CACHE>" for cache errors
        row: 1-based data row, -1 for table-level errors
        error_type: classification in UPPER_SNAKE_CASE
        message: error description
    """
    timestamp: str
    table: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(table: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            table=table,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
