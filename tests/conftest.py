# Shared pytest fixtures
from __future__ import annotations

import asyncio
import copy
import logging
import tempfile
from pathlib import Path
from typing import Any

import pytest

from asset_sync.client.sheets_client import parse_payload
from asset_sync.logging.init import LOGGER_NAME, reset_logging
from asset_sync.models.raw_table import RawTable

PRODUCTS_HEADER = [
    "Timestamp", "Serial No", "Product Name", "Category", "Brand", "Model", "Status",
    "Cost", "Qty", "Part 1", "Part 2", "Part 3", "Location", "Department",
]
REPAIRS_HEADER = [
    "Product SN", "Repair Date", "Repair Cost", "Part Changed", "Technician", "Remarks", "Created Date",
]
MAINTENANCE_HEADER = [
    "Product SN", "Maintenance Required", "Maintenance Type", "Frequency",
    "Next Service Date", "Technician", "Notes",
]
SPECS_HEADER = ["Product SN", "Spec Name", "Spec Value"]


def make_backend_payloads() -> dict[str, dict[str, Any]]:
    """Endpoint bodies keyed by sheet name."""
    return {
        "Products": {"success": True, "data": [
            PRODUCTS_HEADER,
            ["2024-01-01", "SN-001", "Dell Latitude 5440", "Laptop", "Dell", "5440", "",
             "85,000", "1", "Battery", "-", "", "Pune", "IT"],
            ["2024-01-02", "SN-002", "HP LaserJet", "Printer", "HP", "M404", "In Repair",
             "abc", "2", "", "", "", "Mumbai", "Admin"],
            [""] * len(PRODUCTS_HEADER),
            ["2024-01-03", "SN-001", "Duplicate Laptop", "Laptop", "Dell", "X", "",
             "1", "1", "", "", "", "Pune", "IT"],
        ]},
        "Product_Repairs": {"success": True, "data": [
            REPAIRS_HEADER,
            ["SN-001", "2024-01-10", "500", "No", "Ravi", "Fan noise", "2024-01-10"],
            REPAIRS_HEADER,  # header echoed into the data section
            ["SN-001", "2024-03-05", "1200", "Yes", "Asha", "Battery swap", "2024-03-05"],
            ["", "2024-02-01", "300", "No", "Kiran", "no serial", ""],
            ["SN-404", "2024-02-02", "50", "No", "Meera", "orphan", ""],
            ["SN-002", "", "75", "No", "Vijay", "logged only", "2024-02-15"],
        ]},
        "Product_Maintenance": {"success": True, "data": [
            MAINTENANCE_HEADER,
            ["SN-001", "Yes", "Preventive", "Quarterly", "2024-06-01", "Ravi", "Clean fans"],
        ]},
        "Product_Specs": {"success": True, "data": [
            SPECS_HEADER,
            ["SN-001", "RAM", "16GB"],
            ["SN-001", "CPU", "i7"],
            ["SN-002", "Type", "Laser"],
        ]},
    }


class FakeFetcher:
    """In-memory stand-in for SheetsClient.

    The payload is captured when fetch_table() is called, then the optional
    gate is awaited, then a configured failure (if any) is raised.
    """

    def __init__(self, payloads: dict[str, dict[str, Any]]) -> None:
        self.payloads = payloads
        self.failures: dict[str, BaseException] = {}
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []

    async def fetch_table(self, table: str) -> RawTable:
        self.calls.append(table)
        payload = copy.deepcopy(self.payloads[table])
        failure = self.failures.get(table)
        gate = self.gate
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if failure is not None:
            raise failure
        return parse_payload(table, payload)


@pytest.fixture()
def backend_payloads() -> dict[str, dict[str, Any]]:
    return make_backend_payloads()


@pytest.fixture()
def fake_fetcher(backend_payloads) -> FakeFetcher:
    return FakeFetcher(backend_payloads)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """base_url: https://sheets.example.test/exec
timeout_seconds: 5
error_log_directory: ./logs
tables:
  products:
    sheet_name: Products
    cache_key: products
header_mappings:
  Warranty Expiry: warrantyExpiry
field_rules:
  status_default: Active
cache:
  backend: file
  directory: ./cache
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: assets
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_fetcher():
    """Factory for extra FakeFetcher instances (e.g. a second coordinator)."""
    return FakeFetcher


@pytest.fixture(autouse=True)
def _restore_app_logger():
    """setup_logging() turns off propagation; undo it so caplog keeps working."""
    yield
    reset_logging()
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
