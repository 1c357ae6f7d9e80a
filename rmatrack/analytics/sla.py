"""SLA breach metrics over open RMA cases."""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from rmatrack.records import coerce_records, utcnow

SLA_HOURS = {
    "Critical": 4,
    "High": 24,
    "Medium": 72,
    "Low": 168,
}
DEFAULT_SLA_HOURS = 72
MAX_BREACH_DETAILS = 10


def sla_hours_for(priority: Optional[str]) -> int:
    return SLA_HOURS.get(priority or "", DEFAULT_SLA_HOURS)


def compute_sla(records: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Compare hours elapsed since the raised date against each case's priority
    window. Cases without a raised date are left out of every figure.
    ``avgBreachHours`` averages over all active cases (non-breaching count as 0).
    """
    now = now or utcnow()
    total_active = 0
    breach_hours_all = []
    details = []

    for rma in coerce_records(records):
        if rma.is_terminal or rma.ascomp_raised_date is None:
            continue
        total_active += 1
        sla_hours = sla_hours_for(rma.priority)
        elapsed = (now - rma.ascomp_raised_date).total_seconds() / 3600
        breach = elapsed - sla_hours if elapsed > sla_hours else 0.0
        breach_hours_all.append(breach)
        if breach > 0:
            details.append({
                "rmaNumber": rma.rma_number,
                "siteName": rma.site_name,
                "priority": rma.priority,
                "caseStatus": rma.case_status,
                "hoursElapsed": round(elapsed, 1),
                "slaHours": sla_hours,
                "breachHours": round(breach, 1),
            })

    details.sort(key=lambda d: d["breachHours"], reverse=True)
    breaches = len(details)
    return {
        "totalActive": total_active,
        "breaches": breaches,
        "breachRate": round(breaches / total_active * 100, 1) if total_active else 0.0,
        "avgBreachHours": round(sum(breach_hours_all) / total_active, 1) if total_active else 0.0,
        "maxBreachHours": round(max(breach_hours_all), 1) if breach_hours_all else 0.0,
        "breachDetails": details[:MAX_BREACH_DETAILS],
    }
