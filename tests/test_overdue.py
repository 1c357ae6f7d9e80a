from datetime import timedelta

import pytest

from conftest import NOW
from rmatrack.analytics.overdue import (
    classify_overdue, classify_severity, parse_days_filter, pending_days, summarize,
)
from rmatrack.records import RMACase


def _rma(days_ago, status="Under Review", **kw):
    return RMACase(ascomp_raised_date=NOW - timedelta(days=days_ago), case_status=status, **kw)


@pytest.mark.parametrize("days,expected", [
    (29, "Normal"), (30, "Overdue"), (44, "Overdue"), (45, "Urgent"),
    (59, "Urgent"), (60, "Critical"), (365, "Critical"),
])
def test_severity_boundaries(days, expected):
    assert classify_severity(days) == expected


def test_days_filter_is_inclusive():
    records = [_rma(29, rma_number="A"), _rma(30, rma_number="B"), _rma(31, rma_number="C")]
    overdue = classify_overdue(records, now=NOW, days_filter=30)
    assert [r["rmaNumber"] for r in overdue] == ["C", "B"]


def test_terminal_and_undated_cases_are_skipped():
    records = [
        _rma(90, "Completed"),
        _rma(90, "Rejected"),
        RMACase(case_status="Under Review", ascomp_raised_date=None),
        RMACase.from_dict({"ascompRaisedDate": "not a date", "caseStatus": "Sent to CDS"}),
        _rma(90, "Sent to CDS"),
    ]
    overdue = classify_overdue(records, now=NOW)
    assert len(overdue) == 1
    assert overdue[0]["caseStatus"] == "Sent to CDS"


def test_future_dates_clamp_to_zero_unless_included():
    future = _rma(-5)
    assert pending_days(future, NOW) == 0
    assert pending_days(future, NOW, include_future=True) == -5
    assert classify_overdue([future], now=NOW) == []


def test_sorted_descending_and_stable():
    records = [_rma(40, rma_number="A"), _rma(70, rma_number="B"), _rma(40, rma_number="C")]
    overdue = classify_overdue(records, now=NOW)
    assert [r["rmaNumber"] for r in overdue] == ["B", "A", "C"]


def test_status_filter():
    records = [_rma(50, "Under Review"), _rma(50, "CDS Approved")]
    overdue = classify_overdue(records, now=NOW, status="CDS Approved")
    assert [r["caseStatus"] for r in overdue] == ["CDS Approved"]
    with pytest.raises(ValueError):
        classify_overdue(records, now=NOW, status="Lost")


@pytest.mark.parametrize("value", ["15", 31, "abc", 0])
def test_days_filter_rejects_other_values(value):
    with pytest.raises(ValueError):
        parse_days_filter(value)


def test_days_filter_default():
    assert parse_days_filter(None) == 30
    assert parse_days_filter("") == 30
    assert parse_days_filter("60") == 60


def test_lamp_assembly_scenario():
    records = [
        _rma(d, s, defective_part_name="Lamp Assembly", defective_part_number="DEFECT-001", priority="High")
        for d, s in ((10, "Completed"), (40, "Under Review"), (70, "Under Review"))
    ]
    overdue = classify_overdue(records, now=NOW, days_filter=30)
    assert [r["daysOverdue"] for r in overdue] == [70, 40]
    assert overdue[0]["severity"] == "Critical"
    assert overdue[0]["isCritical"] is True
    # 40 days is below the 45 day urgent threshold
    assert overdue[1]["severity"] == "Overdue"
    assert overdue[1]["isUrgent"] is False
    assert overdue[1]["raisedDate"] == (NOW - timedelta(days=40)).date().isoformat()

    summary = summarize(overdue, NOW, 30)
    assert summary["totalOverdue"] == 2
    assert summary["criticalCount"] == 1
    assert summary["urgentCount"] == 0
    assert summary["averageDaysOverdue"] == 55
    assert summary["cutoffDate"] == "2024-05-31"
    assert summary["analysisDate"] == "2024-06-30"


def test_summary_of_nothing():
    summary = summarize([], NOW, 45)
    assert summary["totalOverdue"] == 0
    assert summary["averageDaysOverdue"] == 0


def test_accepts_camel_case_dicts():
    overdue = classify_overdue(
        [{"ascompRaisedDate": "2024-04-01T00:00:00Z", "caseStatus": "Under Review", "siteName": "X"}],
        now=NOW,
    )
    assert overdue[0]["daysOverdue"] == 90
    assert overdue[0]["siteName"] == "X"
