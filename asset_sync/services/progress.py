from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display for a refresh (tqdm, TTY only).

One bar with one step per remote table. In non-TTY environments (CI, piped
output) the bar is disabled so no ANSI sequences end up in logs.
"""

__all__ = [
    "SyncProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class SyncProgress:
    """Counts settled table fetches. Usable as the coordinator's progress callback."""

    def __init__(self, total_tables: int, *, description: str = "Syncing tables") -> None:
        self.total_tables = total_tables
        self.description = description
        self.settled = 0
        self.failed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_tables,
                desc=description,
                unit="table",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, table: str, success: bool) -> None:
        self.settled += 1
        if not success:
            self.failed += 1
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(last=table, failed=self.failed)
            self.pbar.update(1)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> SyncProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
