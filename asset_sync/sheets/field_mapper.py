from __future__ import annotations

import re
from collections.abc import Mapping
from types import MappingProxyType

"""Header -> field id mapping.

Every header the four remote tables are known to emit has an explicit entry in
DEFAULT_HEADER_MAPPINGS. Anything else (a column added in the spreadsheet later)
gets a derived camelCase id instead of an error, so schema drift in the backend
never breaks a sync.
"""

__all__ = [
    "DEFAULT_HEADER_MAPPINGS",
    "FieldMapper",
    "camel_case_fallback",
    "map_header",
]

DEFAULT_HEADER_MAPPINGS: Mapping[str, str] = MappingProxyType({
    # Products
    "Timestamp": "timestamp",
    "Serial No": "sn",
    "Product Name": "productName",
    "Category": "category",
    "Type": "type",
    "Brand": "brand",
    "Model": "model",
    "SKU": "sku",
    "Mfg Date": "mfgDate",
    "Origin": "origin",
    "Status": "status",
    "Asset Date": "assetDate",
    "Invoice No": "invoiceNo",
    "Cost": "cost",
    "Qty": "qty",
    "Supplier": "supplier",
    "Payment": "payment",
    "Location": "location",
    "Department": "department",
    "Assigned To": "assignedTo",
    "Responsible": "responsible",
    "Warranty": "warranty",
    "AMC": "amc",
    "Maintenance": "maintenance",
    "Priority": "priority",
    "Last Repair": "lastRepair",
    "Last Cost": "lastCost",
    "Part Chg?": "partChg",
    "Part 1": "part1",
    "Part 2": "part2",
    "Part 3": "part3",
    "Part 4": "part4",
    "Part 5": "part5",
    "Count": "count",
    "Total Cost": "totalCost",
    "Asset Value": "assetValue",
    "Dep. Method": "depMethod",
    "Created By": "createdBy",
    # Product_Repairs
    "Product SN": "productSn",
    "Repair Date": "repairDate",
    "Repair Cost": "repairCost",
    "Part Changed": "partChanged",
    "Technician": "technician",
    "Remarks": "remarks",
    "Created Date": "createdDate",
    # Product_Maintenance
    "Maintenance Required": "maintenanceRequired",
    "Maintenance Type": "maintenanceType",
    "Frequency": "frequency",
    "Next Service Date": "nextServiceDate",
    "Notes": "notes",
    # Product_Specs
    "Spec Name": "specName",
    "Spec Value": "specValue",
})

_WORD_BOUNDARY = re.compile(r"\s+(\S)")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def camel_case_fallback(header: str) -> str:
    """Derive a field id from an unknown header.

    >>> camel_case_fallback("Warranty End Date")
    'warrantyEndDate'
    >>> camel_case_fallback("Cost (INR)")
    'costinr'
    """
    lowered = header.strip().lower()
    camel = _WORD_BOUNDARY.sub(lambda m: m.group(1).upper(), lowered)
    return _NON_ALNUM.sub("", camel)


class FieldMapper:
    """Pure header -> field id function over a fixed mapping table.

    `extra` entries extend or override the built-in table; the resulting table is
    frozen at construction.
    """

    def __init__(
        self,
        mappings: Mapping[str, str] = DEFAULT_HEADER_MAPPINGS,
        extra: Mapping[str, str] | None = None,
    ) -> None:
        table = dict(mappings)
        if extra:
            table.update(extra)
        self._mappings: Mapping[str, str] = MappingProxyType(table)

    @property
    def mappings(self) -> Mapping[str, str]:
        return self._mappings

    def map(self, header: str | None) -> str:
        """Return the field id for a header; "" for blank headers (skip column)."""
        if header is None:
            return ""
        key = header.strip()
        if not key:
            return ""
        mapped = self._mappings.get(key)
        if mapped is not None:
            return mapped
        return camel_case_fallback(key)

    def map_all(self, header: tuple[str, ...] | list[str]) -> list[str]:
        return [self.map(h) for h in header]


_DEFAULT_MAPPER = FieldMapper()


def map_header(header: str | None) -> str:
    """map() with the built-in mapping table."""
    return _DEFAULT_MAPPER.map(header)
