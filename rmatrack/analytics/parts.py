"""
Part analytics: group RMA cases by defective part and score each group.

Priority score (0-10):
    pending-day tier on avgPendingDays   >=60: 4, >=45: 3, >=30: 2, >7: 1
    pending-count tier                   >10: 3, >5: 2, >0: 1
    severity bonus                       any Critical case: 2, any High case: 1
    cost bonus                           totalCost > 100000: 1
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from rmatrack.analytics.overdue import days_between, pending_days, round_half_up
from rmatrack.records import RMACase, coerce_records, format_date, utcnow

UNKNOWN_PART = "Unknown Part"
UNKNOWN_NUMBER = "N/A"
HIGH_COST_THRESHOLD = 100000
CRITICAL_PART_SCORE = 8
MAX_LISTED_SITES = 5

# (part_name, part_number, site_id, site_name) -> latest comment dict or None
CommentLookup = Callable[[str, str, Optional[str], str], Optional[Dict[str, Any]]]

SORT_KEYS: Dict[str, Tuple[str, bool]] = {
    "priority": ("priority", True),
    "pendingDays": ("avgPendingDays", True),
    "pendingCount": ("pendingCount", True),
    "sitesUnderReview": ("activeSitesCount", True),
    "cost": ("totalCost", True),
    "name": ("partName", False),
}


def part_identity(rma: RMACase) -> Tuple[str, str]:
    name = rma.defective_part_name or rma.product_name or UNKNOWN_PART
    number = rma.defective_part_number or rma.product_part_number or UNKNOWN_NUMBER
    return name, number


def priority_score(avg_pending_days: float, pending_count: int,
                   has_critical: bool, has_high: bool, total_cost: float) -> int:
    score = 0
    if avg_pending_days >= 60:
        score += 4
    elif avg_pending_days >= 45:
        score += 3
    elif avg_pending_days >= 30:
        score += 2
    elif avg_pending_days > 7:
        score += 1

    if pending_count > 10:
        score += 3
    elif pending_count > 5:
        score += 2
    elif pending_count > 0:
        score += 1

    if has_critical:
        score += 2
    elif has_high:
        score += 1

    if total_cost > HIGH_COST_THRESHOLD:
        score += 1

    return max(0, min(10, score))


def _resolution_days(rma: RMACase) -> Optional[int]:
    resolved = rma.resolved_at or rma.updated_at
    if resolved is None or rma.ascomp_raised_date is None:
        return None
    return max(0, days_between(rma.ascomp_raised_date, resolved))


def _site_breakdown(part_name: str, part_number: str, cases: List[RMACase], now: datetime,
                    comment_lookup: Optional[CommentLookup]) -> List[Dict[str, Any]]:
    sites: Dict[str, Dict[str, Any]] = {}
    for rma in cases:
        site_name = rma.site_name or "Unknown"
        entry = sites.setdefault(site_name, {
            "siteName": site_name,
            "siteId": rma.site_id,
            "totalCount": 0,
            "pendingCount": 0,
            "totalCost": 0.0,
            "_days": [],
            "rmaNumbers": [],
        })
        entry["totalCount"] += 1
        entry["totalCost"] += rma.estimated_cost or 0.0
        if rma.rma_number:
            entry["rmaNumbers"].append(rma.rma_number)
        if not rma.is_terminal:
            entry["pendingCount"] += 1
            days = pending_days(rma, now)
            if days is not None:
                entry["_days"].append(days)

    breakdown = []
    for entry in sites.values():
        if entry["pendingCount"] == 0:
            continue
        days = entry.pop("_days")
        entry["avgPendingDays"] = round_half_up(sum(days) / len(days)) if days else 0
        entry["maxPendingDays"] = max(days) if days else 0
        entry["latestComment"] = None
        if comment_lookup is not None:
            entry["latestComment"] = comment_lookup(part_name, part_number, entry["siteId"], entry["siteName"])
        breakdown.append(entry)

    breakdown.sort(key=lambda e: e["pendingCount"], reverse=True)
    return breakdown


def _aggregate_group(part_name: str, part_number: str, cases: List[RMACase], now: datetime,
                     comment_lookup: Optional[CommentLookup]) -> Dict[str, Any]:
    total = len(cases)
    pending = [rma for rma in cases if not rma.is_terminal]
    completed = [rma for rma in cases if rma.case_status == "Completed"]
    rejected = [rma for rma in cases if rma.case_status == "Rejected"]

    pending_day_values = [d for d in (pending_days(rma, now) for rma in pending) if d is not None]
    avg_pending = round_half_up(sum(pending_day_values) / len(pending_day_values)) if pending_day_values else 0
    max_pending = max(pending_day_values) if pending_day_values else 0

    resolution_values = [d for d in (_resolution_days(rma) for rma in completed) if d is not None]
    avg_resolution = round_half_up(sum(resolution_values) / len(resolution_values)) if resolution_values else 0

    total_cost = sum(rma.estimated_cost or 0.0 for rma in cases)
    pending_cost = sum(rma.estimated_cost or 0.0 for rma in pending)

    status_breakdown: Dict[str, int] = {}
    site_names: List[str] = []
    active_sites = set()
    for rma in cases:
        status = rma.case_status or "Unknown"
        status_breakdown[status] = status_breakdown.get(status, 0) + 1
        site = rma.site_name or "Unknown"
        if site not in site_names:
            site_names.append(site)
        if not rma.is_terminal:
            active_sites.add(site)

    latest = None
    for rma in cases:
        stamp = rma.updated_at or rma.created_at or rma.ascomp_raised_date
        if stamp is None:
            continue
        if latest is None or stamp > latest[0]:
            latest = (stamp, rma)

    score = priority_score(
        avg_pending,
        len(pending),
        any(rma.priority == "Critical" for rma in cases),
        any(rma.priority == "High" for rma in cases),
        total_cost,
    )

    return {
        "partName": part_name,
        "partNumber": part_number,
        "totalCount": total,
        "pendingCount": len(pending),
        "completedCount": len(completed),
        "rejectedCount": len(rejected),
        "completionRate": round_half_up(len(completed) / total * 100) if total else 0,
        "avgPendingDays": avg_pending,
        "maxPendingDays": max_pending,
        "avgResolutionDays": avg_resolution,
        "totalCost": total_cost,
        "pendingCost": pending_cost,
        "avgCost": round(total_cost / total, 2) if total else 0.0,
        "statusBreakdown": status_breakdown,
        "affectedSites": len(site_names),
        "activeSitesCount": len(active_sites),
        "sites": site_names[:MAX_LISTED_SITES],
        "siteBreakdown": _site_breakdown(part_name, part_number, cases, now, comment_lookup),
        "lastStatus": latest[1].case_status if latest else None,
        "lastUpdateDate": format_date(latest[0]) if latest else None,
        "priority": score,
    }


def aggregate_parts(records: Iterable[Any], now: Optional[datetime] = None,
                    comment_lookup: Optional[CommentLookup] = None) -> List[Dict[str, Any]]:
    """
    Build one aggregate per (partName, partNumber), ordered by priority then
    pendingCount (both descending). Pure given ``now`` and the lookup.
    """
    now = now or utcnow()
    groups: Dict[Tuple[str, str], List[RMACase]] = {}
    for rma in coerce_records(records):
        groups.setdefault(part_identity(rma), []).append(rma)

    parts = [
        _aggregate_group(name, number, cases, now, comment_lookup)
        for (name, number), cases in groups.items()
    ]
    parts.sort(key=lambda p: (p["priority"], p["pendingCount"]), reverse=True)
    return parts


def sort_parts(parts: List[Dict[str, Any]], sort_by: Optional[str]) -> List[Dict[str, Any]]:
    """Stable sort on one of SORT_KEYS. An empty key keeps the current order."""
    if not sort_by:
        return list(parts)
    if sort_by not in SORT_KEYS:
        raise ValueError(f"sortBy must be one of {sorted(SORT_KEYS)}, got {sort_by!r}")
    field, descending = SORT_KEYS[sort_by]
    if field == "partName":
        return sorted(parts, key=lambda p: (p.get(field) or "").lower())
    # ties keep input order
    return sorted(parts, key=lambda p: p.get(field) or 0, reverse=descending)


def summarize_parts(parts: List[Dict[str, Any]]) -> Dict[str, Any]:
    with_pending = [p for p in parts if p["pendingCount"] > 0]
    avg_pending = round_half_up(
        sum(p["avgPendingDays"] for p in with_pending) / len(with_pending)
    ) if with_pending else 0
    return {
        "totalParts": len(parts),
        "partsWithPending": len(with_pending),
        "avgPendingDays": avg_pending,
        "criticalParts": sum(1 for p in parts if p["priority"] >= CRITICAL_PART_SCORE),
        "totalPendingCost": sum(p["pendingCost"] for p in parts),
    }
