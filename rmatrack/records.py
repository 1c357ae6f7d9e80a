"""
Record types shared by the RMA, analytics and import modules.

RMA cases travel as ``RMACase`` instances inside the service. JSON payloads use
camelCase keys, the database uses snake_case columns; both mappings live here.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

CASE_STATUSES = (
    "Under Review",
    "Sent to CDS",
    "CDS Approved",
    "Replacement Shipped",
    "Replacement Received",
    "Installation Complete",
    "Faulty Part Returned",
    "CDS Confirmed Return",
    "Completed",
    "Rejected",
)
TERMINAL_STATUSES = ("Completed", "Rejected")
PRIORITIES = ("Low", "Medium", "High", "Critical")
WARRANTY_STATUSES = ("In Warranty", "Extended Warranty", "Out of Warranty", "Expired")

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d", "%d-%b-%Y", "%d %b %Y")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a stored or user supplied date leniently.

    Returns None for empty or unparseable values so callers can treat the
    record as "cannot determine" instead of failing.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.upper() == "N/A":
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


DATE_FIELDS = frozenset({
    "ascomp_raised_date", "customer_error_date", "shipped_date",
    "return_shipped_date", "resolved_at", "created_at", "updated_at",
})


@dataclass
class RMACase:
    """One RMA case. Every field except the status/priority defaults is optional."""

    id: Optional[int] = None
    rma_number: Optional[str] = None
    call_log_number: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    product_name: Optional[str] = None
    product_part_number: Optional[str] = None
    serial_number: Optional[str] = None
    defective_part_number: Optional[str] = None
    defective_part_name: Optional[str] = None
    defective_serial_number: Optional[str] = None
    symptoms: Optional[str] = None
    replaced_part_number: Optional[str] = None
    replaced_part_name: Optional[str] = None
    replaced_part_serial_number: Optional[str] = None
    ascomp_raised_date: Optional[datetime] = None
    customer_error_date: Optional[datetime] = None
    shipped_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    shipped_thru: Optional[str] = None
    return_shipped_date: Optional[datetime] = None
    return_tracking_number: Optional[str] = None
    return_shipped_thru: Optional[str] = None
    case_status: Optional[str] = "Under Review"
    priority: Optional[str] = "Medium"
    warranty_status: Optional[str] = None
    estimated_cost: Optional[float] = None
    notes: Optional[str] = None
    remarks: Optional[str] = None
    created_by: Optional[str] = None
    created_by_user_id: Optional[int] = None
    originated_from_dtr: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def column_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RMACase":
        """Build from a camelCase (API) or snake_case (DB) mapping."""
        values: Dict[str, Any] = {}
        for name in cls.column_names():
            camel = snake_to_camel(name)
            if camel in data:
                raw = data[camel]
            elif name in data:
                raw = data[name]
            else:
                continue
            values[name] = _coerce(name, raw)
        return cls(**values)

    @classmethod
    def from_row(cls, row) -> "RMACase":
        return cls.from_dict(dict(row))

    def to_dict(self) -> Dict[str, Any]:
        """camelCase JSON representation with ISO dates."""
        out: Dict[str, Any] = {}
        for name in self.column_names():
            value = getattr(self, name)
            if name in DATE_FIELDS:
                value = format_date(value)
            out[snake_to_camel(name)] = value
        return out

    def to_row(self) -> Dict[str, Any]:
        """snake_case mapping ready for parameter binding."""
        row = {}
        for name in self.column_names():
            value = getattr(self, name)
            row[name] = format_date(value) if name in DATE_FIELDS else value
        return row

    @property
    def is_terminal(self) -> bool:
        return self.case_status in TERMINAL_STATUSES


def _coerce(name: str, raw: Any) -> Any:
    if name in DATE_FIELDS:
        return parse_date(raw)
    if name == "estimated_cost":
        return _to_float(raw)
    if name in ("id", "created_by_user_id"):
        try:
            return int(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            return None
    return _to_text(raw)


def coerce_records(items: Iterable[Any]) -> List[RMACase]:
    """Accept RMACase instances or RMA-shaped dicts and return RMACase instances."""
    records = []
    for item in items or []:
        if isinstance(item, RMACase):
            records.append(item)
        elif isinstance(item, dict):
            records.append(RMACase.from_dict(item))
        else:
            raise ValueError(f"Unsupported RMA record type: {type(item).__name__}")
    return records
