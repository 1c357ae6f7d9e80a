"""Counts of RMAs by status, priority and site."""

from typing import Any, Dict, Iterable


def _bucket(value: Any) -> str:
    if value is None:
        return "Unknown"
    text = str(value).strip()
    return text or "Unknown"


def _get(item: Any, camel: str, snake: str) -> Any:
    if isinstance(item, dict):
        return item.get(camel, item.get(snake))
    return getattr(item, snake, None)


def build_breakdown(records: Iterable[Any]) -> Dict[str, Dict[str, int]]:
    """Accepts RMACase objects or camelCase/snake_case dicts."""
    by_status: Dict[str, int] = {}
    by_priority: Dict[str, int] = {}
    by_site: Dict[str, int] = {}
    for item in records or []:
        status = _bucket(_get(item, "caseStatus", "case_status"))
        priority = _bucket(_get(item, "priority", "priority"))
        site = _bucket(_get(item, "siteName", "site_name"))
        by_status[status] = by_status.get(status, 0) + 1
        by_priority[priority] = by_priority.get(priority, 0) + 1
        by_site[site] = by_site.get(site, 0) + 1
    return {"byStatus": by_status, "byPriority": by_priority, "bySite": by_site}


def resolve_breakdown(payload: Dict[str, Any]) -> Dict[str, Dict[str, int]]:
    """
    Use a precomputed ``breakdown`` when the payload carries one, otherwise
    compute it from ``overdueRMAs``. Missing maps default to empty.
    """
    existing = payload.get("breakdown")
    if isinstance(existing, dict) and existing:
        return {
            "byStatus": dict(existing.get("byStatus") or {}),
            "byPriority": dict(existing.get("byPriority") or {}),
            "bySite": dict(existing.get("bySite") or {}),
        }
    return build_breakdown(payload.get("overdueRMAs") or [])
