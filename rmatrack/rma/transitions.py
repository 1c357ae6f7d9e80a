"""
Case status transition table.

The table documents the normal forward path of an RMA. By default it is
advisory: off-table moves are allowed and logged. With strict mode on they are
rejected.
"""

from typing import Dict, Optional, Tuple

from rmatrack.records import CASE_STATUSES

TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "Under Review": ("Sent to CDS", "Rejected"),
    "Sent to CDS": ("CDS Approved", "Rejected"),
    "CDS Approved": ("Replacement Shipped",),
    "Replacement Shipped": ("Replacement Received",),
    "Replacement Received": ("Installation Complete",),
    "Installation Complete": ("Faulty Part Returned",),
    "Faulty Part Returned": ("CDS Confirmed Return",),
    "CDS Confirmed Return": ("Completed",),
    "Completed": (),
    "Rejected": (),
}


def allowed_next(status: Optional[str]) -> Tuple[str, ...]:
    return TRANSITIONS.get(status or "", ())


def is_listed_transition(old_status: Optional[str], new_status: str) -> bool:
    return new_status in allowed_next(old_status)


def check_transition(old_status: Optional[str], new_status: str, strict: bool = False) -> bool:
    """
    Validate ``old_status -> new_status``.

    Returns True when the move is on the table (or a no-op) and False for an
    off-table move in permissive mode. Raises ValueError for unknown statuses,
    and for off-table moves when ``strict`` is set.
    """
    if new_status not in CASE_STATUSES:
        raise ValueError(f"Invalid caseStatus: {new_status}")
    if old_status == new_status:
        return True
    if is_listed_transition(old_status, new_status):
        return True
    if strict:
        raise ValueError(
            f"Transition {old_status} -> {new_status} not allowed; "
            f"expected one of {list(allowed_next(old_status)) or 'none (terminal)'}"
        )
    return False
