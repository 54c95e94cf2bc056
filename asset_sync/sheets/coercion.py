from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from ..models.config_models import FieldRules
from ..models.records import PART_NAMES_FIELD

"""Row coercion: raw cell text -> typed field values.

Rules are chosen by field-id membership in the FieldRules sets, never by looking
at the value. Spreadsheet input is untyped, so nothing here raises: bad numeric
text becomes 0, blank status becomes the default status.
"""

__all__ = [
    "coerce_row",
    "coerce_value",
    "parse_number",
]

# Leading decimal number, like a lenient float parse of "500 INR"
_NUMBER_PREFIX = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(raw: Any) -> float:
    """Parse a spreadsheet cell as a number. Blank/unparseable -> 0.0.

    Thousands separators are dropped first ("1,200" -> 1200.0). The result is
    always finite.
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else 0.0
    text = str(raw).strip().replace(",", "")
    m = _NUMBER_PREFIX.match(text)
    if m is None:
        return 0.0
    value = float(m.group(0))
    if not math.isfinite(value):  # e.g. "1e999"
        return 0.0
    return value


def coerce_value(field_id: str, raw: str | None, rules: FieldRules) -> Any:
    """Coerce one cell. Part fields keep their raw text (see coerce_row for partNames)."""
    text = "" if raw is None else raw
    if field_id in rules.numeric_fields:
        return parse_number(text)
    if field_id in rules.status_fields:
        return text if text.strip() else rules.status_default
    return text


def coerce_row(pairs: Iterable[tuple[str, str | None]], rules: FieldRules) -> dict[str, Any]:
    """Build the typed values of one record from ordered (field_id, raw) pairs.

    Pairs with a blank field id are skipped. The result always carries
    `partNames`: the non-blank, non-sentinel part cells in column order.
    """
    values: dict[str, Any] = {}
    part_names: list[str] = []
    for field_id, raw in pairs:
        if not field_id:
            continue
        value = coerce_value(field_id, raw, rules)
        values[field_id] = value
        if field_id in rules.part_fields and isinstance(value, str):
            part = value.strip()
            if part and part != rules.part_sentinel:
                part_names.append(part)
    values[PART_NAMES_FIELD] = tuple(part_names)
    return values
