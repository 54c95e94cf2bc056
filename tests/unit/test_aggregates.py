from __future__ import annotations

from asset_sync.models.records import Record
from asset_sync.models.summaries import RepairSummary
from asset_sync.services.aggregates import (
    effective_repair_date,
    sort_repairs_newest_first,
    summarize_repairs,
)


def _repair(date="", cost=0, part_changed="No", created="", note=""):
    return Record({
        "productSn": "SN-1",
        "repairDate": date,
        "repairCost": cost,
        "partChanged": part_changed,
        "createdDate": created,
        "remarks": note,
        "partNames": (),
    })


def test_empty_summary():
    """No repairs -> zero counts, no last date, partChanged 'No'."""
    summary = summarize_repairs([])
    assert summary == RepairSummary()
    assert summary.to_dict() == {
        "repairCount": 0,
        "totalRepairCost": 0,
        "lastRepairDate": None,
        "lastRepairCost": 0,
        "partChanged": "No",
    }


def test_summary_uses_latest_repair():
    repairs = [
        _repair("2024-01-10", 500, "No"),
        _repair("2024-03-05", 1200, "Yes"),
    ]
    summary = summarize_repairs(repairs)

    assert summary.repair_count == 2
    assert summary.total_repair_cost == 1700
    assert summary.last_repair_date == "2024-03-05"
    assert summary.last_repair_cost == 1200
    assert summary.part_changed == "Yes"


def test_summary_sums_cost_text_leniently():
    """Cached records may carry text costs; they sum the same way coercion parses them."""
    summary = summarize_repairs([_repair("2024-01-01", "1,000"), _repair("2024-01-02", "abc")])
    assert summary.total_repair_cost == 1000
    assert summary.last_repair_cost == 0


def test_summary_blank_part_changed_reads_as_no():
    summary = summarize_repairs([_repair("2024-01-01", 10, part_changed="")])
    assert summary.part_changed == "No"


def test_sort_does_not_mutate_input():
    repairs = [_repair("2024-01-10"), _repair("2024-03-05")]
    original = list(repairs)
    ordered = sort_repairs_newest_first(repairs)

    assert repairs == original
    assert [r["repairDate"] for r in ordered] == ["2024-03-05", "2024-01-10"]


def test_created_date_stands_in_for_missing_repair_date():
    logged = _repair("", 75, created="2024-02-15")
    assert effective_repair_date(logged) == "2024-02-15"

    ordered = sort_repairs_newest_first([_repair("2024-01-10"), logged, _repair("2024-03-05")])
    assert [effective_repair_date(r) for r in ordered] == ["2024-03-05", "2024-02-15", "2024-01-10"]


def test_unparseable_dates_sort_last():
    ordered = sort_repairs_newest_first([
        _repair("not a date", note="bad"),
        _repair("2023-05-01", note="old"),
        _repair("", note="none"),
        _repair("2024-05-01", note="new"),
    ])
    assert [r["remarks"] for r in ordered] == ["new", "old", "bad", "none"]


def test_equal_dates_keep_source_order():
    ordered = sort_repairs_newest_first([
        _repair("2024-01-10", note="first"),
        _repair("2024-01-10", note="second"),
        _repair("2024-01-10", note="third"),
    ])
    assert [r["remarks"] for r in ordered] == ["first", "second", "third"]


def test_iso_timestamps_with_zone_compare_by_instant():
    ordered = sort_repairs_newest_first([
        _repair("2024-03-05T10:00:00Z", note="utc"),
        _repair("2024-03-05T12:00:00+05:30", note="ist"),  # 06:30Z
        _repair("2024-03-04", note="day before"),
    ])
    assert [r["remarks"] for r in ordered] == ["utc", "ist", "day before"]
