"""
DTR (Diagnostic Ticket/Report) Manager

A DTR records a projector fault reported from site. Technicians log
troubleshooting steps against it; when the fault needs a part replacement the
DTR is converted into an RMA case.
"""

from __future__ import annotations
import sqlite3
from typing import Any, Dict, List, Optional

from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import PRIORITIES, RMACase, format_date, parse_date, utcnow
from rmatrack.rma.manager import RMAManager
from rmatrack.sites.manager import SiteManager

DTR_STATUSES = ("Open", "In Progress", "Ready for RMA", "Closed", "Shifted to RMA")
CREATOR_ROLES = ("admin", "rma_manager")
CONVERTER_ROLES = ("admin", "rma_manager")


class DTRManager:
    """Manages DTR cases and their conversion into RMAs"""

    def __init__(self, conn: sqlite3.Connection, rma_manager: Optional[RMAManager] = None):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.rma_manager = rma_manager or RMAManager(conn)
        self.sites = SiteManager(conn)

    def create_dtr(self, data: Dict[str, Any], user: Dict[str, Any]) -> Dict:
        """Only admins and RMA managers open DTRs; the projector must be registered."""
        if user.get("role") not in CREATOR_ROLES:
            raise PermissionError("Only admins and RMA managers can create DTRs")

        serial = (data.get("serialNumber") or "").strip()
        complaint = (data.get("complaintDescription") or "").strip()
        if not serial or not complaint:
            raise ValueError("serialNumber and complaintDescription are required")

        priority = data.get("priority") or "Medium"
        if priority not in PRIORITIES:
            raise ValueError(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")

        projector = self.sites.get_projector(serial)
        if not projector:
            raise ValueError(f"Projector with serial number {serial} not found")

        error_date = parse_date(data.get("errorDate")) if data.get("errorDate") else utcnow()
        if error_date is None:
            raise ValueError(f"errorDate is not a valid date: {data.get('errorDate')!r}")

        assignee = None
        if data.get("assignedToUserId") is not None:
            assignee = self.conn.execute(
                "SELECT id, name FROM user WHERE id = ?", (data["assignedToUserId"],)
            ).fetchone()
            if not assignee:
                raise ValueError(f"User {data['assignedToUserId']} not found")

        now = utcnow().isoformat()
        cursor = self.conn.execute("""
            INSERT INTO dtr_cases (case_id, serial_number, site_name, complaint_description, problem_name,
                                   unit_model, error_date, priority, status, opened_by,
                                   assigned_to_user_id, assigned_to_name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'Open', ?, ?, ?, ?, ?)
        """, (
            self._generate_case_id(), serial, projector["siteName"], complaint,
            data.get("problemName") or complaint, data.get("unitModel") or projector["model"],
            format_date(error_date), priority, user.get("name") or user.get("username"),
            assignee["id"] if assignee else None, assignee["name"] if assignee else None, now, now,
        ))
        self.conn.commit()
        return self.get_dtr(cursor.lastrowid)

    def get_dtr(self, dtr_id: int) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM dtr_cases WHERE id = ?", (dtr_id,)).fetchone()
        if not row:
            return None
        dtr = self._to_dict(row)
        steps = self.conn.execute(
            "SELECT * FROM dtr_troubleshooting_steps WHERE dtr_id = ? ORDER BY step", (dtr_id,)
        ).fetchall()
        dtr["troubleshootingSteps"] = [
            {
                "step": s["step"],
                "description": s["description"],
                "outcome": s["outcome"],
                "performedBy": s["performed_by"],
                "performedAt": s["performed_at"],
            }
            for s in steps
        ]
        return dtr

    def list_dtrs(self, status: Optional[str] = None, site_name: Optional[str] = None) -> List[Dict]:
        query = "SELECT * FROM dtr_cases WHERE 1 = 1"
        params: List[Any] = []
        if status:
            query += " AND status = ?"
            params.append(status)
        if site_name:
            query += " AND site_name = ?"
            params.append(site_name)
        query += " ORDER BY created_at DESC, id DESC"
        return [self._to_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def assign(self, dtr_id: int, technician_id: int, user: Dict[str, Any]) -> Dict:
        if user.get("role") not in CONVERTER_ROLES:
            raise PermissionError("Only admins and RMA managers can assign DTRs")
        self._require_dtr(dtr_id)
        tech = self.conn.execute("SELECT id, name FROM user WHERE id = ?", (technician_id,)).fetchone()
        if not tech:
            raise ValueError(f"User {technician_id} not found")
        self.conn.execute("""
            UPDATE dtr_cases
            SET assigned_to_user_id = ?, assigned_to_name = ?,
                status = CASE WHEN status = 'Open' THEN 'In Progress' ELSE status END,
                updated_at = ?
            WHERE id = ?
        """, (tech["id"], tech["name"], utcnow().isoformat(), dtr_id))
        self.conn.commit()
        return self.get_dtr(dtr_id)

    def add_troubleshooting_step(self, dtr_id: int, description: str, outcome: str,
                                 user: Dict[str, Any]) -> Dict:
        """Admins, or the technician the DTR is assigned to."""
        dtr = self._require_dtr(dtr_id)
        if not description or not outcome:
            raise ValueError("description and outcome are required")
        self._check_assignee_or(dtr, user, ("admin",), "add troubleshooting steps to")
        if dtr["status"] in ("Closed", "Shifted to RMA"):
            raise ValueError(f"DTR {dtr['caseId']} is {dtr['status']}")

        step = len(dtr["troubleshootingSteps"]) + 1
        now = utcnow().isoformat()
        self.conn.execute("""
            INSERT INTO dtr_troubleshooting_steps (dtr_id, step, description, outcome, performed_by, performed_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (dtr_id, step, description, outcome, user.get("name") or user.get("username"), now))
        self.conn.execute(
            "UPDATE dtr_cases SET status = CASE WHEN status = 'Open' THEN 'In Progress' ELSE status END, "
            "updated_at = ? WHERE id = ?",
            (now, dtr_id)
        )
        self.conn.commit()
        return self.get_dtr(dtr_id)

    def mark_for_conversion(self, dtr_id: int, reason: str, user: Dict[str, Any]) -> Dict:
        dtr = self._require_dtr(dtr_id)
        if not reason:
            raise ValueError("conversionReason is required")
        self._check_assignee_or(dtr, user, CONVERTER_ROLES, "mark for conversion")
        self.conn.execute(
            "UPDATE dtr_cases SET status = 'Ready for RMA', conversion_reason = ?, updated_at = ? WHERE id = ?",
            (reason, utcnow().isoformat(), dtr_id)
        )
        self.conn.commit()
        return self.get_dtr(dtr_id)

    def convert_to_rma(self, dtr_id: int, user: Dict[str, Any], additional_notes: str = "") -> Dict:
        """
        Create an RMA from the DTR and mark the DTR 'Shifted to RMA'.

        Returns ``{"dtr": ..., "rma": RMACase}``. A DTR converts once only.
        """
        dtr = self._require_dtr(dtr_id)
        if dtr["status"] == "Shifted to RMA" and dtr["rmaNumber"]:
            raise ValueError(f"DTR already converted to RMA {dtr['rmaNumber']}")
        self._check_assignee_or(dtr, user, CONVERTER_ROLES, "convert")

        projector = self.sites.get_projector(dtr["serialNumber"]) or {}
        history = ""
        if dtr["troubleshootingSteps"]:
            history = "\n\nTroubleshooting History:\n" + "\n".join(
                f"Step {s['step']}: {s['description']}\nOutcome: {s['outcome']}\n"
                f"Performed by: {s['performedBy']} on {(s['performedAt'] or '')[:10]}"
                for s in dtr["troubleshootingSteps"]
            )
        notes = (
            f"Auto-generated from DTR: {dtr['caseId']}\n\n"
            f"Original Complaint: {dtr['complaintDescription']}{history}"
        )
        if additional_notes:
            notes += f"\n\n{additional_notes}"

        now = utcnow()
        error_date = parse_date(dtr["errorDate"]) or now
        payload = {
            "callLogNumber": dtr["caseId"],
            "ascompRaisedDate": now.isoformat(),
            "customerErrorDate": min(error_date, now).isoformat(),
            "siteName": dtr["siteName"],
            "productName": dtr["unitModel"] or projector.get("model") or "Unknown",
            "productPartNumber": projector.get("partNumber") or "N/A",
            "serialNumber": dtr["serialNumber"],
            "defectivePartNumber": projector.get("partNumber") or "N/A",
            "defectivePartName": dtr["problemName"] or "Projector Component",
            "defectiveSerialNumber": dtr["serialNumber"],
            "symptoms": dtr["complaintDescription"],
            "caseStatus": "Under Review",
            "priority": "High" if dtr["priority"] == "Critical" else dtr["priority"],
            "estimatedCost": 0,
            "notes": notes,
            "originatedFromDtr": dtr["caseId"],
        }
        rma: RMACase = self.rma_manager.create_rma(payload, user, commit=False)

        self.conn.execute("""
            UPDATE dtr_cases
            SET status = 'Shifted to RMA', rma_number = ?, converted_at = ?, updated_at = ?
            WHERE id = ?
        """, (rma.rma_number, now.isoformat(), now.isoformat(), dtr_id))
        self.conn.commit()

        app_logger.info("DTR converted to RMA", case_id=dtr["caseId"], rma_number=rma.rma_number)
        return {"dtr": self.get_dtr(dtr_id), "rma": rma}

    # =============================
    # Helper Methods
    # =============================

    def _require_dtr(self, dtr_id: int) -> Dict:
        dtr = self.get_dtr(dtr_id)
        if not dtr:
            raise LookupError(f"DTR {dtr_id} not found")
        return dtr

    @staticmethod
    def _check_assignee_or(dtr: Dict, user: Dict[str, Any], roles, action: str):
        role = user.get("role")
        if role == "technician":
            if dtr["assignedToUserId"] != user.get("id"):
                raise PermissionError(f"You can only {action} DTRs assigned to you")
        elif role not in roles:
            raise PermissionError(f"Insufficient permissions to {action} DTRs")

    def _generate_case_id(self) -> str:
        today = utcnow().strftime("%Y%m%d")
        count = self.conn.execute(
            "SELECT COUNT(*) FROM dtr_cases WHERE case_id LIKE ?", (f"DTR-{today}-%",)
        ).fetchone()[0]
        return f"DTR-{today}-{count + 1:04d}"

    @staticmethod
    def _to_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "caseId": row["case_id"],
            "serialNumber": row["serial_number"],
            "siteName": row["site_name"],
            "complaintDescription": row["complaint_description"],
            "problemName": row["problem_name"],
            "unitModel": row["unit_model"],
            "errorDate": row["error_date"],
            "priority": row["priority"],
            "status": row["status"],
            "openedBy": row["opened_by"],
            "assignedToUserId": row["assigned_to_user_id"],
            "assignedToName": row["assigned_to_name"],
            "conversionReason": row["conversion_reason"],
            "rmaNumber": row["rma_number"],
            "convertedAt": row["converted_at"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
