"""
Overdue classification for open RMA cases.

A case is overdue when it is still open and its ASCOMP raised date lies at
least ``days_filter`` whole days in the past.
"""

from __future__ import annotations
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from rmatrack.records import CASE_STATUSES, RMACase, coerce_records, utcnow

ALLOWED_DAYS = (30, 45, 60, 90)
DEFAULT_DAYS = 30

CRITICAL_DAYS = 60
URGENT_DAYS = 45
OVERDUE_DAYS = 30


def round_half_up(value: float) -> int:
    """Round .5 upwards, the way dashboards display averages."""
    return int(math.floor(value + 0.5))


def days_between(start: datetime, now: datetime) -> int:
    """Whole days elapsed from ``start`` to ``now`` (floored)."""
    return (now - start) // timedelta(days=1)


def classify_severity(days_overdue: int) -> str:
    if days_overdue >= CRITICAL_DAYS:
        return "Critical"
    if days_overdue >= URGENT_DAYS:
        return "Urgent"
    if days_overdue >= OVERDUE_DAYS:
        return "Overdue"
    return "Normal"


def parse_days_filter(value: Any) -> int:
    """Validate the ``days`` query value; only the dashboard buckets are accepted."""
    if value is None or value == "":
        return DEFAULT_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"days must be one of {ALLOWED_DAYS}, got {value!r}")
    if days not in ALLOWED_DAYS:
        raise ValueError(f"days must be one of {ALLOWED_DAYS}, got {days}")
    return days


def validate_status_filter(status: Optional[str]) -> str:
    if not status or status == "all":
        return "all"
    if status not in CASE_STATUSES:
        raise ValueError(f"Invalid status filter: {status}")
    return status


def pending_days(rma: RMACase, now: datetime, include_future: bool = False) -> Optional[int]:
    """Days since the case was raised, or None when the raised date is unknown."""
    if rma.ascomp_raised_date is None:
        return None
    days = days_between(rma.ascomp_raised_date, now)
    if days < 0 and not include_future:
        return 0
    return days


def classify_overdue(records: Iterable[Any], now: Optional[datetime] = None,
                     days_filter: int = DEFAULT_DAYS, status: str = "all",
                     include_future: bool = False) -> List[Dict[str, Any]]:
    """
    Return the overdue subset of ``records`` as augmented camelCase dicts.

    Completed and Rejected cases never appear. Cases without a parseable
    raised date are skipped. The result is sorted by ``daysOverdue`` descending
    and keeps input order for equal values.
    """
    days_filter = parse_days_filter(days_filter)
    status = validate_status_filter(status)
    now = now or utcnow()

    overdue = []
    for rma in coerce_records(records):
        if rma.is_terminal:
            continue
        if status != "all" and rma.case_status != status:
            continue
        days = pending_days(rma, now, include_future)
        if days is None or days < days_filter:
            continue
        severity = classify_severity(days)
        item = rma.to_dict()
        item.update({
            "daysOverdue": days,
            "raisedDate": rma.ascomp_raised_date.date().isoformat(),
            "severity": severity,
            "isCritical": severity == "Critical",
            "isUrgent": severity == "Urgent",
        })
        overdue.append(item)

    overdue.sort(key=lambda item: item["daysOverdue"], reverse=True)
    return overdue


def summarize(overdue: List[Dict[str, Any]], now: datetime, days_filter: int) -> Dict[str, Any]:
    total = len(overdue)
    average = round_half_up(sum(item["daysOverdue"] for item in overdue) / total) if total else 0
    return {
        "totalOverdue": total,
        "criticalCount": sum(1 for item in overdue if item["isCritical"]),
        "urgentCount": sum(1 for item in overdue if item["isUrgent"]),
        "averageDaysOverdue": average,
        "cutoffDate": (now - timedelta(days=days_filter)).date().isoformat(),
        "analysisDate": now.date().isoformat(),
    }
