from __future__ import annotations

import logging

from asset_sync.client.sheets_client import parse_payload
from asset_sync.models.config_models import DEFAULT_TABLES, TableConfig, TableRole
from asset_sync.models.raw_table import RawTable
from asset_sync.sheets.field_mapper import FieldMapper
from asset_sync.sheets.table_builder import build_table, frame_table, key_column

PRODUCTS, REPAIRS, MAINTENANCE, SPECS = DEFAULT_TABLES
BOOKKEEPING = {"partNames", "id", "rowIndex"}


def _raw(backend_payloads, table: TableConfig) -> RawTable:
    return parse_payload(table.sheet_name, backend_payloads[table.sheet_name])


def test_products_are_typed_numbered_and_deduplicated(backend_payloads):
    """Products: coerced values, id/rowIndex from the source position, first SN wins."""
    products = build_table(_raw(backend_payloads, PRODUCTS), PRODUCTS)

    assert [p["sn"] for p in products] == ["SN-001", "SN-002"]

    laptop, printer = products
    assert laptop["id"] == 1
    assert laptop["rowIndex"] == 2
    assert laptop["cost"] == 85000
    assert laptop["qty"] == 1
    assert laptop["status"] == "Active"
    assert laptop.part_names == ("Battery",)
    assert laptop["productName"] == "Dell Latitude 5440"

    assert printer["id"] == 2
    assert printer["rowIndex"] == 3
    assert printer["cost"] == 0
    assert printer["status"] == "In Repair"
    assert printer.part_names == ()


def test_duplicate_serial_is_logged(backend_payloads, caplog):
    caplog.set_level(logging.WARNING, logger="asset_sync")
    build_table(_raw(backend_payloads, PRODUCTS), PRODUCTS)
    assert any("duplicate sn='SN-001'" in r.getMessage() for r in caplog.records)


def test_record_fields_come_only_from_mapped_headers(backend_payloads):
    """Every non-bookkeeping field of a record is the mapping of some header."""
    mapper = FieldMapper()
    for table in DEFAULT_TABLES:
        raw = _raw(backend_payloads, table)
        mapped = set(mapper.map_all(raw.header)) - {""}
        for record in build_table(raw, table, mapper):
            assert set(record) - BOOKKEEPING <= mapped
            assert "partNames" in record


def test_relation_rows_without_key_or_echoing_header_are_dropped(backend_payloads):
    repairs = build_table(_raw(backend_payloads, REPAIRS), REPAIRS)

    assert [r["productSn"] for r in repairs] == ["SN-001", "SN-001", "SN-404", "SN-002"]
    assert [r["repairCost"] for r in repairs] == [500, 1200, 50, 75]
    assert all("id" not in r and "rowIndex" not in r for r in repairs)


def test_short_rows_read_as_blank_for_missing_columns():
    raw = RawTable.from_data([
        ["Product SN", "Spec Name", "Spec Value"],
        ["SN-1", "RAM"],
    ])
    (spec,) = build_table(raw, SPECS)
    assert spec["specName"] == "RAM"
    assert spec["specValue"] == ""


def test_blank_header_columns_are_skipped():
    raw = RawTable.from_data([
        ["Serial No", "", "Cost"],
        ["SN-9", "stray note", "10"],
    ])
    (product,) = build_table(raw, PRODUCTS)
    assert product["sn"] == "SN-9"
    assert product["cost"] == 10
    assert "" not in product
    assert "stray note" not in product.values()


def test_numeric_cells_from_the_backend_are_accepted():
    """The backend emits numbers for numeric cells; they flow through as text first."""
    raw = RawTable.from_data([["Serial No", "Cost", "Qty"], ["SN-1", 1500.0, 3]])
    (product,) = build_table(raw, PRODUCTS)
    assert product["cost"] == 1500
    assert product["qty"] == 3


def test_empty_payload_builds_nothing(caplog):
    caplog.set_level(logging.WARNING, logger="asset_sync")
    assert build_table(RawTable.from_data([]), PRODUCTS) == []
    assert any("empty payload" in r.getMessage() for r in caplog.records)


def test_header_only_payload_builds_nothing():
    raw = RawTable.from_data([["Product SN", "Repair Date"]])
    assert build_table(raw, REPAIRS) == []


def test_key_column_falls_back_to_first_column(caplog):
    """Without a header mapping to productSn, column 0 is the key and is copied into it."""
    caplog.set_level(logging.WARNING, logger="asset_sync")
    raw = RawTable.from_data([
        ["Asset", "Spec Name", "Spec Value"],
        ["SN-7", "Screen", "14in"],
        ["", "orphan", "x"],
    ])
    (spec,) = build_table(raw, SPECS)

    assert spec["productSn"] == "SN-7"
    assert spec["asset"] == "SN-7"
    assert any("using column 0 as key" in r.getMessage() for r in caplog.records)


def test_key_column_uses_first_matching_header():
    table = TableConfig(TableRole.SPECS, "Product_Specs", "specsData", "productSn")
    header = ("Spec Name", "Product SN", "Product Serial No")
    assert key_column(header, ["specName", "productSn", "productSn"], table) == 1


def test_custom_header_mappings_apply():
    mapper = FieldMapper(extra={"Warranty Expiry": "warrantyExpiry"})
    raw = RawTable.from_data([["Serial No", "Warranty Expiry"], ["SN-1", "2026-01-01"]])
    (product,) = build_table(raw, PRODUCTS, mapper)
    assert product["warrantyExpiry"] == "2026-01-01"


def test_frame_table_pads_and_truncates_rows():
    raw = RawTable.from_data([["A", "B"], ["1"], ["1", "2", "3"]])
    df = frame_table(raw)
    assert df.shape == (2, 2)
    assert list(df.iloc[0]) == ["1", ""]
    assert list(df.iloc[1]) == ["1", "2"]
