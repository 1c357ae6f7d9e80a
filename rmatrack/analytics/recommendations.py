"""Rule-based recommendations for the overdue dashboard."""

from typing import Any, Dict, List, Optional

DEFAULT_BREACH_RATE_THRESHOLD = 25.0
UNDER_REVIEW_LIMIT = 5
SHIPPED_LIMIT = 3

TYPE_RANK = {"critical": 0, "urgent": 1}


def generate_recommendations(summary: Dict[str, Any], breakdown: Dict[str, Dict[str, int]],
                             sla: Optional[Dict[str, Any]] = None,
                             breach_rate_threshold: float = DEFAULT_BREACH_RATE_THRESHOLD
                             ) -> List[Dict[str, str]]:
    """
    Each recommendation is ``{type, message, action}``. Critical items come
    first, then urgent, then the remaining rules in declaration order.
    """
    by_status = breakdown.get("byStatus") or {}
    by_priority = breakdown.get("byPriority") or {}
    recs = []

    critical = summary.get("criticalCount", 0)
    if critical > 0:
        recs.append({
            "type": "critical",
            "message": f"{critical} RMAs are critically overdue (60+ days). Immediate action required.",
            "action": "Prioritize these RMAs for immediate resolution",
        })

    urgent = summary.get("urgentCount", 0)
    if urgent > 0:
        recs.append({
            "type": "urgent",
            "message": f"{urgent} RMAs are urgently overdue (45-59 days). Action needed within 1 week.",
            "action": "Review and expedite these RMAs",
        })

    if sla:
        breach_rate = float(sla.get("breachRate") or 0)
        if breach_rate > breach_rate_threshold:
            recs.append({
                "type": "urgent",
                "message": f"SLA breach rate is {breach_rate}% ({sla.get('breaches', 0)} of "
                           f"{sla.get('totalActive', 0)} active RMAs).",
                "action": "Rebalance workload and review SLA-breached RMAs",
            })

    critical_priority = by_priority.get("Critical", 0)
    if critical_priority > 0:
        recs.append({
            "type": "escalation",
            "message": f"{critical_priority} critical-priority RMAs are overdue.",
            "action": "Immediate escalation to senior management required",
        })

    high_priority = by_priority.get("High", 0)
    if high_priority > 0:
        recs.append({
            "type": "priority",
            "message": f"{high_priority} high-priority RMAs are overdue.",
            "action": "Escalate high-priority overdue RMAs to management",
        })

    under_review = by_status.get("Under Review", 0)
    if under_review > UNDER_REVIEW_LIMIT:
        recs.append({
            "type": "process",
            "message": f"{under_review} RMAs stuck in 'Under Review' status.",
            "action": "Review approval process and assign reviewers",
        })

    shipped = by_status.get("Replacement Shipped", 0)
    if shipped > SHIPPED_LIMIT:
        recs.append({
            "type": "logistics",
            "message": f"{shipped} RMAs waiting for replacement delivery.",
            "action": "Check shipping status and expedite delivery",
        })

    return sorted(recs, key=lambda r: TYPE_RANK.get(r["type"], 2))
