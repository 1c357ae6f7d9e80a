from datetime import timedelta

from conftest import NOW
from rmatrack.analytics.breakdown import build_breakdown, resolve_breakdown
from rmatrack.analytics.recommendations import generate_recommendations
from rmatrack.analytics.sla import compute_sla
from rmatrack.records import RMACase


def test_breakdown_totals_match_input():
    records = [
        {"caseStatus": "Under Review", "priority": "High", "siteName": "A"},
        {"caseStatus": "Under Review", "priority": None, "siteName": ""},
        RMACase(case_status=None, priority="Low", site_name="A"),
    ]
    breakdown = build_breakdown(records)
    for key in ("byStatus", "byPriority", "bySite"):
        assert sum(breakdown[key].values()) == len(records)
    assert breakdown["byStatus"] == {"Under Review": 2, "Unknown": 1}
    assert breakdown["bySite"] == {"A": 2, "Unknown": 1}


def test_resolve_prefers_existing_breakdown():
    existing = {"byStatus": {"Sent to CDS": 4}}
    resolved = resolve_breakdown({"breakdown": existing, "overdueRMAs": [{"caseStatus": "X"}]})
    assert resolved == {"byStatus": {"Sent to CDS": 4}, "byPriority": {}, "bySite": {}}
    assert resolve_breakdown({}) == {"byStatus": {}, "byPriority": {}, "bySite": {}}


def test_precomputed_and_computed_breakdowns_agree():
    records = [
        {"caseStatus": "Under Review", "priority": "High", "siteName": "A"},
        {"caseStatus": "Sent to CDS", "priority": "Critical", "siteName": "B"},
        RMACase(case_status="Under Review", priority=None, site_name="A"),
    ]
    expected = build_breakdown(records)
    assert resolve_breakdown({"breakdown": build_breakdown(records)}) == expected
    assert resolve_breakdown({"overdueRMAs": records}) == expected
    assert resolve_breakdown({"breakdown": build_breakdown([])}) == build_breakdown([])


def test_sla_breaches_by_priority_window():
    records = [
        RMACase(rma_number="C", priority="Critical", ascomp_raised_date=NOW - timedelta(hours=10)),
        RMACase(rma_number="H", priority="High", ascomp_raised_date=NOW - timedelta(hours=10)),
        RMACase(rma_number="L", priority="Low", ascomp_raised_date=NOW - timedelta(hours=200)),
        RMACase(rma_number="D", priority="Low", case_status="Completed",
                ascomp_raised_date=NOW - timedelta(days=100)),
        RMACase(rma_number="U", priority="Medium"),
    ]
    sla = compute_sla(records, now=NOW)
    assert sla["totalActive"] == 3
    assert sla["breaches"] == 2
    assert sla["breachRate"] == 66.7
    assert sla["maxBreachHours"] == 32.0
    assert sla["avgBreachHours"] == round((6 + 0 + 32) / 3, 1)
    assert [d["rmaNumber"] for d in sla["breachDetails"]] == ["L", "C"]
    assert sla["breachDetails"][1]["slaHours"] == 4


def test_sla_with_no_active_cases():
    sla = compute_sla([], now=NOW)
    assert sla["breachRate"] == 0.0
    assert sla["breachDetails"] == []


def test_recommendations_ordered_critical_then_urgent():
    summary = {"criticalCount": 2, "urgentCount": 1}
    breakdown = {"byStatus": {"Under Review": 6, "Replacement Shipped": 4}, "byPriority": {"High": 3}}
    sla = {"breachRate": 40.0, "breaches": 4, "totalActive": 10}
    recs = generate_recommendations(summary, breakdown, sla)
    types = [r["type"] for r in recs]
    assert types == ["critical", "urgent", "urgent", "priority", "process", "logistics"]
    assert recs[0]["message"] == "2 RMAs are critically overdue (60+ days). Immediate action required."
    assert all(set(r) == {"type", "message", "action"} for r in recs)


def test_no_recommendations_for_zero_conditions():
    summary = {"criticalCount": 0, "urgentCount": 0}
    breakdown = {"byStatus": {"Under Review": 5, "Replacement Shipped": 3}, "byPriority": {}}
    assert generate_recommendations(summary, breakdown, {"breachRate": 25.0}) == []
