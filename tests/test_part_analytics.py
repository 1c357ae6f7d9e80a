import copy
from datetime import timedelta

import pytest

from conftest import NOW
from rmatrack.analytics.parts import aggregate_parts, priority_score, sort_parts, summarize_parts
from rmatrack.records import RMACase


def _lamp(days_ago, status, **kw):
    return RMACase(
        defective_part_name="Lamp Assembly",
        defective_part_number="DEFECT-001",
        ascomp_raised_date=NOW - timedelta(days=days_ago),
        case_status=status,
        **kw,
    )


@pytest.fixture
def lamp_records():
    return [
        _lamp(10, "Completed", site_name="Site A", rma_number="R1", estimated_cost=100.0,
              resolved_at=NOW - timedelta(days=4)),
        _lamp(40, "Under Review", site_name="Site A", rma_number="R2", estimated_cost=200.0),
        _lamp(70, "Under Review", site_name="Site B", rma_number="R3", estimated_cost=300.0,
              priority="Critical"),
    ]


def test_lamp_assembly_aggregate(lamp_records):
    parts = aggregate_parts(lamp_records, now=NOW)
    assert len(parts) == 1
    part = parts[0]
    assert (part["partName"], part["partNumber"]) == ("Lamp Assembly", "DEFECT-001")
    assert part["totalCount"] == 3
    assert part["pendingCount"] == 2
    assert part["completedCount"] == 1
    assert part["completionRate"] == 33
    assert part["avgPendingDays"] == 55
    assert part["maxPendingDays"] == 70
    assert part["avgResolutionDays"] == 6
    assert part["totalCost"] == 600.0
    assert part["pendingCost"] == 500.0
    assert part["avgCost"] == 200.0
    assert part["statusBreakdown"] == {"Completed": 1, "Under Review": 2}
    assert part["affectedSites"] == 2
    assert part["activeSitesCount"] == 2
    # 55 days -> 3, two pending -> 1, a Critical case -> 2
    assert part["priority"] == 6


def test_site_breakdown_only_lists_pending_sites():
    records = [
        _lamp(10, "Completed", site_name="Done Site"),
        _lamp(35, "Under Review", site_name="Busy", site_id="7"),
        _lamp(45, "Sent to CDS", site_name="Busy", site_id="7"),
        _lamp(50, "Under Review", site_name="Quiet", site_id="8"),
    ]
    part = aggregate_parts(records, now=NOW)[0]
    names = [site["siteName"] for site in part["siteBreakdown"]]
    assert names == ["Busy", "Quiet"]
    busy = part["siteBreakdown"][0]
    assert busy["pendingCount"] == 2
    assert busy["avgPendingDays"] == 40
    assert busy["maxPendingDays"] == 45
    assert busy["latestComment"] is None


def test_comment_lookup_is_called_per_pending_site(lamp_records):
    calls = []

    def lookup(part_name, part_number, site_id, site_name):
        calls.append((part_name, part_number, site_name))
        return {"comment": f"note for {site_name}"}

    part = aggregate_parts(lamp_records, now=NOW, comment_lookup=lookup)[0]
    assert sorted(c[2] for c in calls) == ["Site A", "Site B"]
    assert part["siteBreakdown"][0]["latestComment"]["comment"].startswith("note for")


def test_aggregation_is_idempotent(lamp_records):
    snapshot = copy.deepcopy(lamp_records)
    first = aggregate_parts(lamp_records, now=NOW)
    second = aggregate_parts(lamp_records, now=NOW)
    assert first == second
    assert lamp_records == snapshot


def test_parts_without_names_fall_back():
    parts = aggregate_parts([RMACase(product_name="CP2220", ascomp_raised_date=NOW)], now=NOW)
    assert parts[0]["partName"] == "CP2220"
    assert parts[0]["partNumber"] == "N/A"
    parts = aggregate_parts([RMACase()], now=NOW)
    assert parts[0]["partName"] == "Unknown Part"


def test_priority_score_clamped_and_monotonic():
    assert priority_score(0, 0, False, False, 0) == 0
    assert priority_score(500, 500, True, True, 10 ** 9) == 10
    previous = -1
    for days in (0, 8, 30, 45, 60, 120):
        score = priority_score(days, 3, False, False, 0)
        assert score >= previous
        previous = score
    previous = -1
    for count in (0, 1, 6, 11, 50):
        score = priority_score(20, count, False, False, 0)
        assert score >= previous
        previous = score
    assert priority_score(20, 1, False, True, 0) > priority_score(20, 1, False, False, 0)
    assert priority_score(20, 1, True, False, 0) > priority_score(20, 1, False, True, 0)


def test_sort_parts_by_name_and_unknown_key():
    parts = [
        {"partName": "lamp", "priority": 2, "pendingCount": 1},
        {"partName": "Board", "priority": 2, "pendingCount": 3},
        {"partName": "Ballast", "priority": 5, "pendingCount": 0},
    ]
    assert [p["partName"] for p in sort_parts(parts, "name")] == ["Ballast", "Board", "lamp"]
    assert [p["partName"] for p in sort_parts(parts, "priority")] == ["Ballast", "lamp", "Board"]
    assert sort_parts(parts, None) == parts
    with pytest.raises(ValueError):
        sort_parts(parts, "colour")


SORTABLE_PARTS = [
    {"partName": "Fan", "priority": 3, "avgPendingDays": 40, "pendingCount": 2,
     "activeSitesCount": 1, "totalCost": 5000},
    {"partName": "ballast", "priority": 7, "avgPendingDays": 10, "pendingCount": 2,
     "activeSitesCount": 3, "totalCost": 5000},
    {"partName": "Lamp", "priority": 3, "avgPendingDays": 62, "pendingCount": 6,
     "activeSitesCount": 1, "totalCost": 90000},
    {"partName": "DMD Board", "priority": 0, "avgPendingDays": 10, "pendingCount": 0,
     "activeSitesCount": 0, "totalCost": 0},
]


@pytest.mark.parametrize("sort_by,expected", [
    ("priority", ["ballast", "Fan", "Lamp", "DMD Board"]),
    ("pendingDays", ["Lamp", "Fan", "ballast", "DMD Board"]),
    ("pendingCount", ["Lamp", "Fan", "ballast", "DMD Board"]),
    ("sitesUnderReview", ["ballast", "Fan", "Lamp", "DMD Board"]),
    ("cost", ["Lamp", "Fan", "ballast", "DMD Board"]),
    ("name", ["ballast", "DMD Board", "Fan", "Lamp"]),
])
def test_sort_parts_every_key_with_stable_ties(sort_by, expected):
    parts = copy.deepcopy(SORTABLE_PARTS)
    assert [p["partName"] for p in sort_parts(parts, sort_by)] == expected
    assert parts == SORTABLE_PARTS


def test_summary(lamp_records):
    other = [RMACase(defective_part_name="Fan", defective_part_number="F-1", case_status="Completed",
                     ascomp_raised_date=NOW)]
    parts = aggregate_parts(lamp_records + other, now=NOW)
    summary = summarize_parts(parts)
    assert summary["totalParts"] == 2
    assert summary["partsWithPending"] == 1
    assert summary["avgPendingDays"] == 55
    assert summary["criticalParts"] == 0
    assert summary["totalPendingCost"] == 500.0
