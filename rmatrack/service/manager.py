"""
Field service records: projector service reports and AMC (Annual Maintenance
Contract) contracts.
"""

from __future__ import annotations
import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from rmatrack.dao import next_document_number
from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import format_date, parse_date, utcnow
from rmatrack.sites.manager import SiteManager

REPORT_TYPES = ("First", "Second", "Third", "Fourth", "Emergency", "Installation")
CONTRACT_STATUSES = ("Active", "Expired", "Suspended", "Terminated")
PAYMENT_STATUSES = ("Paid", "Partial", "Pending", "Overdue")

REPORT_FIELDS = {
    "reportType": "report_type",
    "reportDate": "report_date",
    "siteId": "site_id",
    "siteName": "site_name",
    "projectorSerial": "projector_serial",
    "projectorModel": "projector_model",
    "brand": "brand",
    "engineerName": "engineer_name",
    "observations": "observations",
    "recommendedParts": "recommended_parts",
    "replacementRequired": "replacement_required",
}

CONTRACT_FIELDS = {
    "siteId": "site_id",
    "siteName": "site_name",
    "projectorSerial": "projector_serial",
    "contractStartDate": "contract_start_date",
    "contractEndDate": "contract_end_date",
    "contractValue": "contract_value",
    "status": "status",
    "paymentStatus": "payment_status",
    "contractManager": "contract_manager",
}


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _date_column(data: Dict[str, Any], key: str, errors: List[str]) -> Optional[str]:
    if _blank(data.get(key)):
        return None
    parsed = parse_date(data[key])
    if parsed is None:
        errors.append(f"{key} is not a valid date: {data[key]!r}")
    return format_date(parsed)


def contract_status(status: str, start: Optional[datetime], end: Optional[datetime], now: datetime) -> str:
    """Effective state of a contract on ``now``; suspension and termination win over dates."""
    if status in ("Terminated", "Suspended"):
        return status
    if end and end < now:
        return "Expired"
    if start and start > now:
        return "Pending Start"
    return "Active"


class ServiceReportManager:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def create_report(self, data: Dict[str, Any], author: Dict[str, Any]) -> Dict:
        values = self._columns(data, partial=False)
        report_number = (data.get("reportNumber") or "").strip()
        if report_number:
            if self.conn.execute("SELECT 1 FROM service_reports WHERE report_number = ?",
                                 (report_number,)).fetchone():
                raise ValueError(f"Service report already exists: {report_number}")
        else:
            report_number = next_document_number(
                self.conn, "service_reports", "report_number", f"SR-{utcnow():%Y%m%d}"
            )
        now = utcnow().isoformat()
        if not values.get("report_date"):
            values["report_date"] = now
        values.update({
            "report_number": report_number,
            "created_by": author.get("name") or author.get("username"),
            "created_at": now,
            "updated_at": now,
        })
        columns = ", ".join(values)
        cursor = self.conn.execute(
            f"INSERT INTO service_reports ({columns}) VALUES ({', '.join('?' for _ in values)})",
            list(values.values())
        )
        self.conn.commit()
        app_logger.info("Service report created", report_number=report_number, site=values["site_name"])
        return self.get_report(cursor.lastrowid)

    def get_report(self, report_id: int) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM service_reports WHERE id = ?", (report_id,)).fetchone()
        return self._to_dict(row) if row else None

    def list_reports(self, site_name: Optional[str] = None, projector_serial: Optional[str] = None) -> List[Dict]:
        query = "SELECT * FROM service_reports WHERE 1 = 1"
        params: List[Any] = []
        if site_name:
            query += " AND site_name = ?"
            params.append(site_name)
        if projector_serial:
            query += " AND projector_serial = ?"
            params.append(projector_serial)
        query += " ORDER BY report_date DESC, id DESC"
        return [self._to_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def update_report(self, report_id: int, data: Dict[str, Any]) -> Dict:
        self._require(report_id)
        values = self._columns(data, partial=True)
        if values:
            values["updated_at"] = utcnow().isoformat()
            assignments = ", ".join(f"{column} = ?" for column in values)
            self.conn.execute(f"UPDATE service_reports SET {assignments} WHERE id = ?",
                              list(values.values()) + [report_id])
            self.conn.commit()
        return self.get_report(report_id)

    def delete_report(self, report_id: int) -> None:
        self._require(report_id)
        self.conn.execute("DELETE FROM service_reports WHERE id = ?", (report_id,))
        self.conn.commit()

    def _require(self, report_id: int) -> Dict:
        report = self.get_report(report_id)
        if not report:
            raise LookupError(f"Service report {report_id} not found")
        return report

    def _columns(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        errors = []
        for key in ("siteName", "projectorSerial"):
            if (not partial or key in data) and _blank(data.get(key)):
                errors.append(f"{key} is required")
        if "reportType" in data and data["reportType"] not in REPORT_TYPES:
            errors.append(f"Invalid reportType: {data['reportType']}. Must be one of: {', '.join(REPORT_TYPES)}")
        for key in ("observations", "recommendedParts"):
            if key in data and not isinstance(data[key], list):
                errors.append(f"{key} must be a list")

        values = {REPORT_FIELDS[key]: data[key] for key in REPORT_FIELDS if key in data}
        if "reportDate" in data:
            values["report_date"] = _date_column(data, "reportDate", errors)
        if errors:
            raise ValueError("; ".join(errors))

        for column in ("observations", "recommended_parts"):
            if column in values:
                values[column] = json.dumps(values[column])
        if "replacement_required" in values:
            values["replacement_required"] = 1 if values["replacement_required"] else 0
        return values

    @staticmethod
    def _to_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "reportNumber": row["report_number"],
            "reportType": row["report_type"],
            "reportDate": row["report_date"],
            "siteId": row["site_id"],
            "siteName": row["site_name"],
            "projectorSerial": row["projector_serial"],
            "projectorModel": row["projector_model"],
            "brand": row["brand"],
            "engineerName": row["engineer_name"],
            "observations": json.loads(row["observations"]) if row["observations"] else [],
            "recommendedParts": json.loads(row["recommended_parts"]) if row["recommended_parts"] else [],
            "replacementRequired": bool(row["replacement_required"]),
            "createdBy": row["created_by"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


class AMCContractManager:
    """AMC contracts per projector. A registered projector fills in its site."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def create_contract(self, data: Dict[str, Any], now: Optional[datetime] = None) -> Dict:
        data = self._with_projector_site(data)
        values = self._columns(data)
        values["contract_number"] = next_document_number(
            self.conn, "amc_contracts", "contract_number", f"AMC-{utcnow():%Y}"
        )
        values["created_at"] = values["updated_at"] = utcnow().isoformat()
        columns = ", ".join(values)
        cursor = self.conn.execute(
            f"INSERT INTO amc_contracts ({columns}) VALUES ({', '.join('?' for _ in values)})",
            list(values.values())
        )
        self.conn.commit()
        app_logger.info("AMC contract created", contract_number=values["contract_number"],
                        projector=values["projector_serial"])
        return self.get_contract(cursor.lastrowid, now=now)

    def get_contract(self, contract_id: int, now: Optional[datetime] = None) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM amc_contracts WHERE id = ?", (contract_id,)).fetchone()
        return self._to_dict(row, now or utcnow()) if row else None

    def list_contracts(self, status: Optional[str] = None, site_name: Optional[str] = None,
                       now: Optional[datetime] = None) -> List[Dict]:
        query = "SELECT * FROM amc_contracts WHERE 1 = 1"
        params: List[Any] = []
        if status:
            query += " AND status = ?"
            params.append(status)
        if site_name:
            query += " AND site_name = ?"
            params.append(site_name)
        query += " ORDER BY contract_end_date, id"
        now = now or utcnow()
        return [self._to_dict(row, now) for row in self.conn.execute(query, params).fetchall()]

    def update_contract(self, contract_id: int, data: Dict[str, Any], now: Optional[datetime] = None) -> Dict:
        current = self.get_contract(contract_id)
        if not current:
            raise LookupError(f"AMC contract {contract_id} not found")
        values = self._columns({**current, **data})
        changed = {column: values[column] for key, column in CONTRACT_FIELDS.items() if key in data}
        if changed:
            changed["updated_at"] = utcnow().isoformat()
            assignments = ", ".join(f"{column} = ?" for column in changed)
            self.conn.execute(f"UPDATE amc_contracts SET {assignments} WHERE id = ?",
                              list(changed.values()) + [contract_id])
            self.conn.commit()
        return self.get_contract(contract_id, now=now)

    def delete_contract(self, contract_id: int) -> None:
        if not self.get_contract(contract_id):
            raise LookupError(f"AMC contract {contract_id} not found")
        self.conn.execute("DELETE FROM amc_contracts WHERE id = ?", (contract_id,))
        self.conn.commit()

    def _with_projector_site(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not _blank(data.get("siteName")) or _blank(data.get("projectorSerial")):
            return data
        projector = SiteManager(self.conn).get_projector(data["projectorSerial"])
        if not projector or not projector["siteName"]:
            return data
        return {**data, "siteId": projector["siteId"], "siteName": projector["siteName"]}

    @staticmethod
    def _columns(data: Dict[str, Any]) -> Dict[str, Any]:
        errors = []
        for key in ("siteName", "projectorSerial", "contractStartDate", "contractEndDate"):
            if _blank(data.get(key)):
                errors.append(f"{key} is required")
        if (data.get("status") or "Active") not in CONTRACT_STATUSES:
            errors.append(f"Invalid status: {data['status']}. Must be one of: {', '.join(CONTRACT_STATUSES)}")
        if (data.get("paymentStatus") or "Pending") not in PAYMENT_STATUSES:
            errors.append(f"Invalid paymentStatus: {data['paymentStatus']}. "
                          f"Must be one of: {', '.join(PAYMENT_STATUSES)}")
        try:
            value = float(data.get("contractValue") or 0)
            if value < 0:
                errors.append("contractValue must be >= 0")
        except (TypeError, ValueError):
            errors.append(f"contractValue must be a number: {data.get('contractValue')!r}")
            value = 0.0

        values = {column: data.get(key) for key, column in CONTRACT_FIELDS.items()}
        values["contract_start_date"] = _date_column(data, "contractStartDate", errors)
        values["contract_end_date"] = _date_column(data, "contractEndDate", errors)
        start, end = parse_date(values["contract_start_date"]), parse_date(values["contract_end_date"])
        if start and end and end <= start:
            errors.append("contractEndDate must be after contractStartDate")
        if errors:
            raise ValueError("; ".join(errors))

        values["contract_value"] = value
        values["status"] = data.get("status") or "Active"
        values["payment_status"] = data.get("paymentStatus") or "Pending"
        return values

    @staticmethod
    def _to_dict(row: sqlite3.Row, now: datetime) -> Dict:
        start = parse_date(row["contract_start_date"])
        end = parse_date(row["contract_end_date"])
        return {
            "id": row["id"],
            "contractNumber": row["contract_number"],
            "siteId": row["site_id"],
            "siteName": row["site_name"],
            "projectorSerial": row["projector_serial"],
            "contractStartDate": row["contract_start_date"],
            "contractEndDate": row["contract_end_date"],
            "contractValue": row["contract_value"],
            "status": row["status"],
            "paymentStatus": row["payment_status"],
            "contractManager": row["contract_manager"],
            "contractStatus": contract_status(row["status"], start, end, now),
            "daysUntilExpiry": (end.date() - now.date()).days if end else None,
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
