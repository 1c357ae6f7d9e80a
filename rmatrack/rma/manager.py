"""
RMA (Return Merchandise Authorization) Manager

Covers the projector RMA case lifecycle:
1. Case creation (manual, DTR conversion or bulk import)
2. Field updates (shipping, replacement and return details)
3. Status changes with activity log and creator notifications
4. Case comments
5. Reporting (stats overview, full record set for analytics)
"""

from __future__ import annotations
import json
import math
import sqlite3
from typing import Any, Dict, List, Optional

from rmatrack.notifications import NotificationService
from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import (
    CASE_STATUSES, PRIORITIES, TERMINAL_STATUSES, WARRANTY_STATUSES,
    RMACase, parse_date, snake_to_camel, utcnow,
)
from rmatrack.rma.transitions import check_transition
from rmatrack.symptoms import SymptomClassifier, default_classifier

REQUIRED_FIELDS = ("siteName", "productName", "serialNumber", "ascompRaisedDate", "customerErrorDate")
DATE_INPUTS = ("ascompRaisedDate", "customerErrorDate", "shippedDate", "returnShippedDate")
COMMENT_TYPES = ("update", "status_change", "note", "escalation", "resolution")

# Columns a client may not set directly
PROTECTED_COLUMNS = ("id", "rma_number", "created_by", "created_by_user_id", "created_at",
                     "updated_at", "resolved_at", "case_status")


def _provided(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key)
    return value is not None and str(value).strip() != ""


def validate_rma_payload(data: Dict[str, Any], partial: bool = False) -> List[str]:
    """
    Return a list of validation messages for a camelCase RMA payload.
    With ``partial`` only the keys present are checked. A required field
    that is present must still be non-blank.
    """
    errors = []
    for field in REQUIRED_FIELDS:
        if partial and field not in data:
            continue
        if not _provided(data, field):
            errors.append(f"{field} is required")

    for field in DATE_INPUTS:
        if _provided(data, field) and parse_date(data[field]) is None:
            errors.append(f"{field} is not a valid date: {data[field]!r}")

    enums = (("caseStatus", CASE_STATUSES), ("priority", PRIORITIES), ("warrantyStatus", WARRANTY_STATUSES))
    for field, allowed in enums:
        if _provided(data, field) and data[field] not in allowed:
            errors.append(f"Invalid {field}: {data[field]}. Must be one of: {', '.join(allowed)}")

    if _provided(data, "estimatedCost"):
        try:
            if float(data["estimatedCost"]) < 0:
                errors.append("estimatedCost must be >= 0")
        except (TypeError, ValueError):
            errors.append(f"estimatedCost must be a number: {data['estimatedCost']!r}")

    return errors


def check_date_order(rma: RMACase) -> Optional[str]:
    if rma.ascomp_raised_date and rma.customer_error_date:
        if rma.ascomp_raised_date.date() < rma.customer_error_date.date():
            return "ascompRaisedDate cannot be earlier than customerErrorDate"
    return None


def _days_ceil(start, end) -> Optional[int]:
    if start is None or end is None:
        return None
    return math.ceil((end - start).total_seconds() / 86400)


def rma_payload(rma: RMACase, classifier: SymptomClassifier = default_classifier) -> Dict[str, Any]:
    """camelCase record plus display-only derived fields."""
    data = rma.to_dict()
    data["displayReplacedPartName"] = classifier.resolve_replaced_part_name(
        rma.replaced_part_name, rma.defective_part_name
    )
    data["daysCountShippedToSite"] = _days_ceil(rma.ascomp_raised_date, rma.shipped_date)
    data["daysCountReturnToCDS"] = _days_ceil(rma.shipped_date, rma.return_shipped_date)
    return data


class RMAManager:
    """Manages the RMA case lifecycle"""

    def __init__(self, conn: sqlite3.Connection, strict_transitions: bool = False):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.strict_transitions = strict_transitions

    # =============================
    # Case creation and updates
    # =============================

    def create_rma(self, data: Dict[str, Any], actor: Dict[str, Any], lenient: bool = False,
                   commit: bool = True) -> RMACase:
        """
        Create a new RMA case from a camelCase payload.

        ``lenient`` is used by bulk import: required-field and date-format
        checks are skipped and unparseable dates are stored as empty.
        """
        if not lenient:
            errors = validate_rma_payload(data)
            if errors:
                raise ValueError("; ".join(errors))

        rma = RMACase.from_dict(data)
        if lenient:
            for field, allowed in (("case_status", CASE_STATUSES), ("priority", PRIORITIES)):
                value = getattr(rma, field)
                if value is not None and value not in allowed:
                    raise ValueError(f"Invalid {snake_to_camel(field)}: {value}")
        else:
            order_error = check_date_order(rma)
            if order_error:
                raise ValueError(order_error)

        rma.case_status = rma.case_status or "Under Review"
        rma.priority = rma.priority or "Medium"
        rma.rma_number = rma.rma_number or self._generate_rma_number()
        if self.conn.execute("SELECT 1 FROM rma_cases WHERE rma_number = ?", (rma.rma_number,)).fetchone():
            raise ValueError(f"RMA number already exists: {rma.rma_number}")

        now = utcnow()
        rma.created_by = rma.created_by or actor.get("name") or actor.get("username")
        rma.created_by_user_id = actor.get("id")
        rma.created_at = now
        rma.updated_at = now
        if rma.case_status in TERMINAL_STATUSES:
            rma.resolved_at = now

        row = rma.to_row()
        row.pop("id")
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        cursor = self.conn.execute(
            f"INSERT INTO rma_cases ({columns}) VALUES ({placeholders})", list(row.values())
        )
        rma.id = cursor.lastrowid

        source = f"Created from DTR {rma.originated_from_dtr}" if rma.originated_from_dtr else "RMA created"
        self._log_activity(rma.id, "CREATED", None, rma.case_status, self._actor_name(actor), source)

        if commit:
            self.conn.commit()
        app_logger.info("RMA created", rma_number=rma.rma_number, site=rma.site_name, actor=self._actor_name(actor))
        return rma

    def update_rma(self, rma_id: int, data: Dict[str, Any], actor: Dict[str, Any]) -> RMACase:
        """
        Partial update. A ``caseStatus`` in the payload goes through
        ``change_status`` so transitions are logged the same way.
        """
        current = self._require_rma(rma_id)
        errors = validate_rma_payload(data, partial=True)
        if errors:
            raise ValueError("; ".join(errors))

        incoming = RMACase.from_dict(data)
        updates = {}
        for column in RMACase.column_names():
            if column in PROTECTED_COLUMNS:
                continue
            if snake_to_camel(column) in data or column in data:
                updates[column] = getattr(incoming, column)

        merged = RMACase.from_dict({**current.to_row(), **updates})
        order_error = check_date_order(merged)
        if order_error:
            raise ValueError(order_error)

        new_status = data.get("caseStatus")
        status_changes = bool(new_status) and new_status != current.case_status
        if status_changes:
            check_transition(current.case_status, new_status, strict=self.strict_transitions)

        if updates:
            merged.updated_at = utcnow()
            updates["updated_at"] = merged.updated_at
            row = merged.to_row()
            assignments = ", ".join(f"{column} = ?" for column in updates)
            self.conn.execute(
                f"UPDATE rma_cases SET {assignments} WHERE id = ?",
                [row[column] for column in updates] + [rma_id]
            )
            self._log_activity(rma_id, "UPDATED", current.case_status, current.case_status,
                               self._actor_name(actor), "Fields updated",
                               metadata={"fields": sorted(snake_to_camel(c) for c in updates if c != "updated_at")})
            self.conn.commit()

        if status_changes:
            return self.change_status(rma_id, new_status, actor, notes=data.get("statusNotes", ""))
        return self._require_rma(rma_id)

    def change_status(self, rma_id: int, new_status: str, actor: Dict[str, Any], notes: str = "") -> RMACase:
        """Move a case to ``new_status``; terminal statuses stamp resolved_at."""
        rma = self._require_rma(rma_id)
        old_status = rma.case_status
        listed = check_transition(old_status, new_status, strict=self.strict_transitions)
        if old_status == new_status:
            return rma
        if not listed:
            app_logger.warning(
                "Off-table RMA status transition",
                rma_number=rma.rma_number, old_status=old_status, new_status=new_status
            )

        now = utcnow()
        if new_status in TERMINAL_STATUSES:
            resolved_at = now.isoformat()
        else:
            resolved_at = None
        self.conn.execute(
            "UPDATE rma_cases SET case_status = ?, resolved_at = ?, updated_at = ? WHERE id = ?",
            (new_status, resolved_at, now.isoformat(), rma_id)
        )
        self._log_activity(rma_id, "STATUS_CHANGED", old_status, new_status, self._actor_name(actor),
                           notes or f"Status changed from {old_status} to {new_status}")
        self.conn.commit()
        app_logger.info("RMA status changed", rma_number=rma.rma_number,
                        old_status=old_status, new_status=new_status)
        return self._require_rma(rma_id)

    # =============================
    # Comments
    # =============================

    def add_comment(self, rma_id: int, body: str, author: Dict[str, Any],
                    comment_type: str = "update", is_internal: bool = False) -> Dict:
        self._require_rma(rma_id)
        if not body or not str(body).strip():
            raise ValueError("Comment body is required")
        if comment_type not in COMMENT_TYPES:
            raise ValueError(f"Invalid commentType. Must be one of: {', '.join(COMMENT_TYPES)}")

        now = utcnow().isoformat()
        cursor = self.conn.execute("""
            INSERT INTO rma_comments (rma_id, author_id, author_name, author_role, comment_type,
                                      is_internal, body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (rma_id, author.get("id"), self._actor_name(author), author.get("role", "rma_handler"),
              comment_type, 1 if is_internal else 0, str(body).strip(), now, now))
        self.conn.commit()
        return self.get_comment(cursor.lastrowid)

    def list_comments(self, rma_id: int, include_internal: bool = True) -> List[Dict]:
        self._require_rma(rma_id)
        query = "SELECT * FROM rma_comments WHERE rma_id = ?"
        if not include_internal:
            query += " AND is_internal = 0"
        query += " ORDER BY created_at ASC, id ASC"
        return [self._comment_dict(row) for row in self.conn.execute(query, (rma_id,)).fetchall()]

    def get_comment(self, comment_id: int) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM rma_comments WHERE id = ?", (comment_id,)).fetchone()
        return self._comment_dict(row) if row else None

    def edit_comment(self, comment_id: int, body: str, user: Dict[str, Any]) -> Dict:
        comment = self._require_comment_owner(comment_id, user)
        if not body or not str(body).strip():
            raise ValueError("Comment body is required")
        self.conn.execute(
            "UPDATE rma_comments SET body = ?, updated_at = ? WHERE id = ?",
            (str(body).strip(), utcnow().isoformat(), comment["id"])
        )
        self.conn.commit()
        return self.get_comment(comment_id)

    def delete_comment(self, comment_id: int, user: Dict[str, Any]):
        comment = self._require_comment_owner(comment_id, user)
        self.conn.execute("DELETE FROM rma_comments WHERE id = ?", (comment["id"],))
        self.conn.commit()

    # =============================
    # Query / Reporting Methods
    # =============================

    def get_rma(self, rma_id: int = None, rma_number: str = None) -> Optional[RMACase]:
        if rma_id is not None:
            row = self.conn.execute("SELECT * FROM rma_cases WHERE id = ?", (rma_id,)).fetchone()
        elif rma_number:
            row = self.conn.execute("SELECT * FROM rma_cases WHERE rma_number = ?", (rma_number,)).fetchone()
        else:
            raise ValueError("Must provide either rma_id or rma_number")
        return RMACase.from_row(row) if row else None

    def list_rmas(self, status: str = None, priority: str = None, site_name: str = None,
                  search: str = None) -> List[RMACase]:
        query = "SELECT * FROM rma_cases WHERE 1 = 1"
        params: List[Any] = []

        if status and status != "all":
            query += " AND case_status = ?"
            params.append(status)
        if priority and priority != "all":
            query += " AND priority = ?"
            params.append(priority)
        if site_name:
            query += " AND site_name = ?"
            params.append(site_name)
        if search:
            like = f"%{search}%"
            query += (" AND (rma_number LIKE ? OR serial_number LIKE ? OR site_name LIKE ?"
                      " OR product_name LIKE ? OR defective_part_name LIKE ? OR call_log_number LIKE ?)")
            params.extend([like] * 6)

        query += " ORDER BY created_at DESC, id DESC"
        return [RMACase.from_row(row) for row in self.conn.execute(query, params).fetchall()]

    def all_rmas(self) -> List[RMACase]:
        rows = self.conn.execute("SELECT * FROM rma_cases ORDER BY id").fetchall()
        return [RMACase.from_row(row) for row in rows]

    def get_activity(self, rma_id: int) -> List[Dict]:
        self._require_rma(rma_id)
        rows = self.conn.execute("""
            SELECT * FROM rma_activity_log
            WHERE rma_id = ?
            ORDER BY id DESC
        """, (rma_id,)).fetchall()
        activities = []
        for row in rows:
            item = dict(row)
            item["metadata"] = json.loads(item["metadata"]) if item.get("metadata") else {}
            activities.append(item)
        return activities

    def stats_overview(self) -> Dict[str, int]:
        """Counts per case status plus the total."""
        counts = {status: 0 for status in CASE_STATUSES}
        total = 0
        for row in self.conn.execute("SELECT case_status, COUNT(*) AS n FROM rma_cases GROUP BY case_status"):
            counts[row["case_status"]] = row["n"]
            total += row["n"]
        overview = {"total": total}
        for status, n in counts.items():
            key = snake_to_camel(status.lower().replace(" ", "_"))
            overview[key.replace("Cds", "CDS")] = n
        overview["open"] = total - counts.get("Completed", 0) - counts.get("Rejected", 0)
        return overview

    # =============================
    # Helper Methods
    # =============================

    def _require_rma(self, rma_id: int) -> RMACase:
        rma = self.get_rma(rma_id=rma_id)
        if not rma:
            raise LookupError(f"RMA {rma_id} not found")
        return rma

    def _require_comment_owner(self, comment_id: int, user: Dict[str, Any]) -> Dict:
        comment = self.get_comment(comment_id)
        if not comment:
            raise LookupError(f"Comment {comment_id} not found")
        if user.get("role") != "admin" and comment["authorId"] != user.get("id"):
            raise PermissionError("Only the comment author or an admin can change this comment")
        return comment

    def _generate_rma_number(self) -> str:
        """RMA-YYYYMMDD-NNNN, numbered per day."""
        today = utcnow().strftime("%Y%m%d")
        count = self.conn.execute(
            "SELECT COUNT(*) FROM rma_cases WHERE rma_number LIKE ?", (f"RMA-{today}-%",)
        ).fetchone()[0]
        candidate = f"RMA-{today}-{count + 1:04d}"
        while self.conn.execute("SELECT 1 FROM rma_cases WHERE rma_number = ?", (candidate,)).fetchone():
            count += 1
            candidate = f"RMA-{today}-{count + 1:04d}"
        return candidate

    @staticmethod
    def _actor_name(actor: Dict[str, Any]) -> str:
        return actor.get("name") or actor.get("username") or "system"

    @staticmethod
    def _comment_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "rmaId": row["rma_id"],
            "authorId": row["author_id"],
            "authorName": row["author_name"],
            "authorRole": row["author_role"],
            "commentType": row["comment_type"],
            "isInternal": bool(row["is_internal"]),
            "body": row["body"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }

    def _log_activity(
        self,
        rma_id: int,
        action: str,
        old_status: Optional[str],
        new_status: Optional[str],
        actor: str,
        notes: str = "",
        metadata: Dict = None
    ):
        """Log activity to audit trail and notify the creator on status changes."""
        self.conn.execute("""
            INSERT INTO rma_activity_log (rma_id, action, old_status, new_status, actor, notes, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (rma_id, action, old_status, new_status, actor, notes, json.dumps(metadata or {}),
              utcnow().isoformat()))

        if not new_status or new_status == old_status or old_status is None:
            return
        rma = self.conn.execute(
            "SELECT created_by_user_id, rma_number FROM rma_cases WHERE id = ?", (rma_id,)
        ).fetchone()
        if rma and rma["created_by_user_id"]:
            try:
                NotificationService.create_rma_status_notification(
                    conn=self.conn,
                    user_id=rma["created_by_user_id"],
                    rma_id=rma_id,
                    rma_number=rma["rma_number"],
                    old_status=old_status,
                    new_status=new_status
                )
            except sqlite3.Error as e:
                # The status change stands even if the notification insert fails
                app_logger.error("Failed to create notification", rma_id=rma_id, error=str(e))
