from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from ..models.raw_table import RawTable

"""HTTP client for the spreadsheet backend.

Endpoint contract:
    GET <base>?sheet=<TableName>&timestamp=<epoch ms cache-buster>
    -> {"success": true, "data": [[header...], [row...], ...]}

Failures are split in two:
- TransportError: network error, timeout, non-2xx status
- SchemaError: body is not JSON, success is not true, data is not a list of rows
"""

__all__ = [
    "SchemaError",
    "SheetsClient",
    "SheetsClientError",
    "TransportError",
    "parse_payload",
]

logger = logging.getLogger(__name__)


class SheetsClientError(Exception):
    """Base class for per-table fetch failures."""
    error_type = "UNEXPECTED_ERROR"

    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"{table}: {message}")
        self.table = table
        self.message = message


class TransportError(SheetsClientError):
    error_type = "TRANSPORT_ERROR"


class SchemaError(SheetsClientError):
    error_type = "SCHEMA_ERROR"


def parse_payload(table: str, payload: Any) -> RawTable:
    """Validate the endpoint body and turn `data` into a RawTable.

    Raises:
        SchemaError: if `success` is missing/false or `data` is malformed
    """
    if not isinstance(payload, dict):
        raise SchemaError(table, f"expected a JSON object, got {type(payload).__name__}")
    if payload.get("success") is not True:
        detail = payload.get("message") or payload.get("error") or "success flag missing or false"
        raise SchemaError(table, str(detail))
    data = payload.get("data")
    if not isinstance(data, list):
        raise SchemaError(table, "'data' must be a list of rows")
    for i, row in enumerate(data):
        if not isinstance(row, list):
            raise SchemaError(table, f"row {i} is {type(row).__name__}, expected list")
    return RawTable.from_data(data)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class SheetsClient:
    """Async fetcher for one backend base URL.

    A caller-supplied httpx.AsyncClient is used as-is (and not closed); otherwise
    the client owns one with the configured timeout.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        cache_buster: Callable[[], int] = _epoch_millis,
    ) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        # Apps Script web apps answer with a redirect to the content host
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)
        self._cache_buster = cache_buster

    async def fetch_table(self, table: str) -> RawTable:
        params = {"sheet": table, "timestamp": str(self._cache_buster())}
        logger.debug(f"GET {self.base_url} sheet={table}")
        try:
            resp = await self._client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            raise TransportError(table, f"{type(e).__name__}: {e}") from e
        if resp.status_code // 100 != 2:
            raise TransportError(table, f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise SchemaError(table, f"invalid JSON response: {e}") from e
        return parse_payload(table, payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> SheetsClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
