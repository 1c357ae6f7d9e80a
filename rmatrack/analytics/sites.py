"""Per-site RMA load, joined with the site register."""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from rmatrack.analytics.overdue import OVERDUE_DAYS, pending_days, round_half_up
from rmatrack.records import coerce_records, utcnow


def site_analytics(sites: List[Dict[str, Any]], records: Iterable[Any],
                   now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    ``sites`` are rows from the site register (name, region, projectorCount).
    RMA cases for sites missing from the register still get a detail row.
    """
    now = now or utcnow()
    details: Dict[str, Dict[str, Any]] = {}
    for site in sites:
        details[site["name"]] = _empty_detail(site["name"], site.get("region"), site.get("projectorCount", 0))

    pending_by_site: Dict[str, List[int]] = {}
    for rma in coerce_records(records):
        name = rma.site_name or "Unknown"
        detail = details.setdefault(name, _empty_detail(name, None, 0))
        detail["totalRMAs"] += 1
        detail["totalCost"] += rma.estimated_cost or 0.0
        if rma.is_terminal:
            continue
        detail["openRMAs"] += 1
        days = pending_days(rma, now)
        if days is None:
            continue
        pending_by_site.setdefault(name, []).append(days)
        if days >= OVERDUE_DAYS:
            detail["overdueRMAs"] += 1

    for name, values in pending_by_site.items():
        details[name]["avgPendingDays"] = round_half_up(sum(values) / len(values))
        details[name]["maxPendingDays"] = max(values)

    by_region: Dict[str, int] = {}
    for detail in details.values():
        region = detail["region"] or "Unknown"
        by_region[region] = by_region.get(region, 0) + 1

    site_details = sorted(details.values(), key=lambda d: (d["openRMAs"], d["overdueRMAs"]), reverse=True)
    return {
        "overview": {
            "totalSites": len(details),
            "registeredSites": len(sites),
            "totalProjectors": sum(d["projectorCount"] for d in details.values()),
            "sitesWithOpenRMAs": sum(1 for d in details.values() if d["openRMAs"] > 0),
        },
        "distribution": {"byRegion": by_region},
        "siteDetails": site_details,
        "lastUpdated": now.isoformat(),
    }


def _empty_detail(name: str, region: Optional[str], projector_count: int) -> Dict[str, Any]:
    return {
        "siteName": name,
        "region": region,
        "projectorCount": projector_count or 0,
        "totalRMAs": 0,
        "openRMAs": 0,
        "overdueRMAs": 0,
        "avgPendingDays": 0,
        "maxPendingDays": 0,
        "totalCost": 0.0,
    }
