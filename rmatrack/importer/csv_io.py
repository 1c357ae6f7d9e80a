"""
CSV export and bulk import of RMA cases.

Export uses the csv module (QUOTE_MINIMAL), so fields holding commas, quotes
or line breaks are quoted and embedded quotes doubled.
Import accepts spreadsheet-style headers and maps them onto RMA fields.
"""

from __future__ import annotations
import csv
import io
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from rmatrack.records import RMACase, snake_to_camel
from rmatrack.rma.manager import RMAManager

HEADER_ALIASES = {
    "rma": "rmaNumber",
    "rma #": "rmaNumber",
    "rma number": "rmaNumber",
    "call log #": "callLogNumber",
    "call log number": "callLogNumber",
    "call no": "callLogNumber",
    "call no.": "callLogNumber",
    "ascomp raised date": "ascompRaisedDate",
    "customer error date": "customerErrorDate",
    "site name": "siteName",
    "product name": "productName",
    "product part #": "productPartNumber",
    "product part number": "productPartNumber",
    "serial #": "serialNumber",
    "serial number": "serialNumber",
    "defective part #": "defectivePartNumber",
    "defective part number": "defectivePartNumber",
    "defective part name": "defectivePartName",
    "defective serial #": "defectiveSerialNumber",
    "defective serial number": "defectiveSerialNumber",
    "symptom": "symptoms",
    "symptoms": "symptoms",
    "replaced part name": "replacedPartName",
    "replacement part name": "replacedPartName",
    "replaced part #": "replacedPartNumber",
    "replaced part number": "replacedPartNumber",
    "replacement part #": "replacedPartNumber",
    "replacement part number": "replacedPartNumber",
    "replaced part serial #": "replacedPartSerialNumber",
    "replaced part serial number": "replacedPartSerialNumber",
    "replacement serial #": "replacedPartSerialNumber",
    "shipped date": "shippedDate",
    "tracking #": "trackingNumber",
    "tracking number": "trackingNumber",
    "shipped thru'": "shippedThru",
    "shipped thru": "shippedThru",
    "shipped through": "shippedThru",
    "rma return shipped date": "returnShippedDate",
    "rma return tracking #": "returnTrackingNumber",
    "rma return tracking number": "returnTrackingNumber",
    "rma return shipped thru": "returnShippedThru",
    "rma return shipped through": "returnShippedThru",
    "remarks": "remarks",
    "notes": "notes",
    "created by": "createdBy",
    "case status": "caseStatus",
    "status": "caseStatus",
    "priority": "priority",
    "warranty status": "warrantyStatus",
    "estimated cost": "estimatedCost",
}

STATUS_ALIASES = {
    "closed": "Completed",
    "completed": "Completed",
    "rejected": "Rejected",
    "under review": "Under Review",
    "open": "Under Review",
    "pending": "Under Review",
    "in progress": "Under Review",
    "sent to cds": "Sent to CDS",
    "cds approved": "CDS Approved",
    "approved": "CDS Approved",
    "replacement shipped": "Replacement Shipped",
    "shipped": "Replacement Shipped",
    "replacement received": "Replacement Received",
    "delivered": "Replacement Received",
    "installation complete": "Installation Complete",
    "faulty part returned": "Faulty Part Returned",
    "returned": "Faulty Part Returned",
    "faulty in transit to cds": "Faulty Part Returned",
    "cds confirmed return": "CDS Confirmed Return",
}

PRIORITY_ALIASES = {
    "low": "Low",
    "medium": "Medium",
    "normal": "Medium",
    "high": "High",
    "urgent": "High",
    "critical": "Critical",
}

EXPORT_COLUMNS: Sequence[Tuple[str, str]] = (
    ("RMA Number", "rmaNumber"),
    ("Call Log #", "callLogNumber"),
    ("Site Name", "siteName"),
    ("Product Name", "productName"),
    ("Product Part #", "productPartNumber"),
    ("Serial #", "serialNumber"),
    ("Defective Part Name", "defectivePartName"),
    ("Defective Part #", "defectivePartNumber"),
    ("Replaced Part Name", "displayReplacedPartName"),
    ("Replaced Part #", "replacedPartNumber"),
    ("Symptoms", "symptoms"),
    ("ASCOMP Raised Date", "ascompRaisedDate"),
    ("Customer Error Date", "customerErrorDate"),
    ("Shipped Date", "shippedDate"),
    ("Tracking #", "trackingNumber"),
    ("Case Status", "caseStatus"),
    ("Priority", "priority"),
    ("Warranty Status", "warrantyStatus"),
    ("Estimated Cost", "estimatedCost"),
    ("Created By", "createdBy"),
)

_CAMEL_FIELDS = {snake_to_camel(name) for name in RMACase.column_names()}


def to_csv(rows: Iterable[Dict[str, Any]], columns: Sequence[Tuple[str, str]] = EXPORT_COLUMNS) -> str:
    """Render dict rows as CSV text with a header row. None becomes an empty field."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([header for header, _ in columns])
    for row in rows:
        writer.writerow(["" if row.get(key) is None else row.get(key) for _, key in columns])
    return buffer.getvalue()


def read_csv(text: str) -> List[Dict[str, str]]:
    if text.startswith("\ufeff"):
        text = text[1:]
    return list(csv.DictReader(io.StringIO(text)))


def normalize_row(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map spreadsheet headers to camelCase RMA fields and canonicalize enums."""
    row: Dict[str, Any] = {}
    for header, value in raw.items():
        if header is None:
            continue
        key = header.strip()
        field = key if key in _CAMEL_FIELDS else HEADER_ALIASES.get(key.lower())
        if not field:
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == "" or value.upper() in ("N/A", "NA"):
                continue
        if value is None:
            continue
        row[field] = value

    status = row.get("caseStatus")
    if isinstance(status, str):
        mapped = STATUS_ALIASES.get(status.lower())
        if mapped is None:
            raise ValueError(f"Unknown case status: {status}")
        row["caseStatus"] = mapped

    priority = row.get("priority")
    if isinstance(priority, str):
        mapped = PRIORITY_ALIASES.get(priority.lower())
        if mapped is None:
            raise ValueError(f"Unknown priority: {priority}")
        row["priority"] = mapped
    return row


def import_rmas(manager: RMAManager, rows: Iterable[Dict[str, Any]], actor: Dict[str, Any]) -> Dict[str, Any]:
    """
    Insert each row as a new RMA. Rows fail independently: a bad row is
    reported under ``errors`` and the rest still import. A duplicate RMA
    number gets a freshly generated one and is listed under ``renumbered``.
    """
    result: Dict[str, Any] = {"totalRows": 0, "imported": 0, "renumbered": [], "errors": []}

    for index, raw in enumerate(rows, start=1):
        result["totalRows"] += 1
        try:
            if not isinstance(raw, dict):
                raise ValueError("Row must be an object")
            data = normalize_row(raw)
            if not any(data.get(f) for f in ("siteName", "productName", "serialNumber")):
                raise ValueError("Missing all essential fields: siteName, productName and serialNumber")
            data.setdefault("siteName", "Unknown Site")
            data.setdefault("productName", "Unknown Product")

            original = data.get("rmaNumber")
            if original and manager.get_rma(rma_number=original):
                data.pop("rmaNumber")
            rma = manager.create_rma(data, actor, lenient=True)
            result["imported"] += 1
            if original and original != rma.rma_number:
                result["renumbered"].append({"row": index, "originalRmaNumber": original,
                                             "rmaNumber": rma.rma_number})
        except ValueError as e:
            manager.conn.rollback()
            result["errors"].append({"row": index, "error": str(e)})

    return result
