"""
Spare-part stock and customer purchase orders.

Stock status follows the quantity on hand: empty stock is "Out of Stock", stock
at or under the reorder level is "Low Stock" (RMA-category parts excepted).
Purchase order totals are always derived from the line items.
"""

from __future__ import annotations
import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from rmatrack.analytics.overdue import round_half_up
from rmatrack.dao import next_document_number
from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import PRIORITIES, format_date, parse_date, utcnow

PART_CATEGORIES = ("Spare Parts", "RMA")
PART_STATUSES = ("In Stock", "Low Stock", "Out of Stock", "RMA Pending", "RMA Approved")
PO_STATUSES = ("Draft", "Pending", "Approved", "In Progress", "Completed", "Rejected", "Cancelled")

PART_FIELDS = {
    "partNumber": "part_number",
    "partName": "part_name",
    "category": "category",
    "brand": "brand",
    "projectorModel": "projector_model",
    "stockQuantity": "stock_quantity",
    "reorderLevel": "reorder_level",
    "unitPrice": "unit_price",
    "supplier": "supplier",
    "location": "location",
    "status": "status",
    "description": "description",
}


def stock_status(quantity: int, reorder_level: int, category: str, current: str = "In Stock") -> str:
    if quantity == 0:
        return "Out of Stock"
    if quantity <= reorder_level and category != "RMA":
        return "Low Stock"
    if category == "Spare Parts":
        return "In Stock"
    return current


def _money(value: float) -> float:
    return round_half_up(value * 100) / 100


def po_totals(line_items: List[Dict[str, Any]], tax_rate: float = 0, discount: float = 0) -> Dict[str, Any]:
    """Normalised line items plus subtotal, tax and total. Tax applies after discount."""
    items = []
    errors = []
    for index, item in enumerate(line_items, start=1):
        description = (item.get("description") or "").strip()
        try:
            quantity = int(item.get("quantity"))
            unit_price = float(item.get("unitPrice"))
        except (TypeError, ValueError):
            errors.append(f"line {index}: quantity and unitPrice must be numbers")
            continue
        if not description:
            errors.append(f"line {index}: description is required")
        if quantity < 1 or unit_price < 0:
            errors.append(f"line {index}: quantity must be >= 1 and unitPrice >= 0")
        items.append({
            "description": description,
            "quantity": quantity,
            "unitPrice": unit_price,
            "total": _money(quantity * unit_price),
            "partNumber": item.get("partNumber"),
        })
    if tax_rate < 0 or discount < 0:
        errors.append("taxRate and discount must be >= 0")
    if errors:
        raise ValueError("; ".join(errors))

    subtotal = _money(sum(item["total"] for item in items))
    tax_amount = _money((subtotal - discount) * tax_rate / 100)
    return {
        "lineItems": items,
        "subtotal": subtotal,
        "taxRate": tax_rate,
        "taxAmount": tax_amount,
        "discount": discount,
        "totalAmount": _money(subtotal + tax_amount - discount),
    }


class SparePartManager:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def create_part(self, data: Dict[str, Any]) -> Dict:
        values = self._columns(data)
        if self.conn.execute("SELECT 1 FROM spare_parts WHERE part_number = ?", (values["part_number"],)).fetchone():
            raise ValueError(f"Spare part already exists: {values['part_number']}")
        values["created_at"] = values["updated_at"] = utcnow().isoformat()
        columns = ", ".join(values)
        cursor = self.conn.execute(
            f"INSERT INTO spare_parts ({columns}) VALUES ({', '.join('?' for _ in values)})",
            list(values.values())
        )
        self.conn.commit()
        return self.get_part(cursor.lastrowid)

    def get_part(self, part_id: int) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM spare_parts WHERE id = ?", (part_id,)).fetchone()
        return self._to_dict(row) if row else None

    def list_parts(self, category: Optional[str] = None, status: Optional[str] = None,
                   search: Optional[str] = None) -> List[Dict]:
        query = "SELECT * FROM spare_parts WHERE 1 = 1"
        params: List[Any] = []
        if category:
            query += " AND category = ?"
            params.append(category)
        if status:
            query += " AND status = ?"
            params.append(status)
        if search:
            query += " AND (part_number LIKE ? OR part_name LIKE ? OR projector_model LIKE ?)"
            params.extend([f"%{search}%"] * 3)
        query += " ORDER BY part_name, part_number"
        return [self._to_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def update_part(self, part_id: int, data: Dict[str, Any]) -> Dict:
        current = self.get_part(part_id)
        if not current:
            raise LookupError(f"Spare part {part_id} not found")
        values = self._columns({**current, **data})
        if values["part_number"] != current["partNumber"] and self.conn.execute(
                "SELECT 1 FROM spare_parts WHERE part_number = ?", (values["part_number"],)).fetchone():
            raise ValueError(f"Spare part already exists: {values['part_number']}")
        values["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in values)
        self.conn.execute(f"UPDATE spare_parts SET {assignments} WHERE id = ?", list(values.values()) + [part_id])
        self.conn.commit()
        if values["status"] != current["status"]:
            app_logger.info("Spare part stock status changed", part_number=values["part_number"],
                            old_status=current["status"], new_status=values["status"])
        return self.get_part(part_id)

    def delete_part(self, part_id: int) -> None:
        if not self.get_part(part_id):
            raise LookupError(f"Spare part {part_id} not found")
        self.conn.execute("DELETE FROM spare_parts WHERE id = ?", (part_id,))
        self.conn.commit()

    @staticmethod
    def _columns(data: Dict[str, Any]) -> Dict[str, Any]:
        errors = []
        for key in ("partNumber", "partName"):
            if not str(data.get(key) or "").strip():
                errors.append(f"{key} is required")
        category = data.get("category") or "Spare Parts"
        if category not in PART_CATEGORIES:
            errors.append(f"Invalid category: {category}. Must be one of: {', '.join(PART_CATEGORIES)}")
        status = data.get("status") or "In Stock"
        if status not in PART_STATUSES:
            errors.append(f"Invalid status: {status}. Must be one of: {', '.join(PART_STATUSES)}")
        try:
            quantity = int(data.get("stockQuantity") or 0)
            reorder_level = int(data["reorderLevel"]) if data.get("reorderLevel") is not None else 5
            unit_price = float(data.get("unitPrice") or 0)
        except (TypeError, ValueError):
            raise ValueError("stockQuantity, reorderLevel and unitPrice must be numbers")
        if quantity < 0 or reorder_level < 0 or unit_price < 0:
            errors.append("stockQuantity, reorderLevel and unitPrice must be >= 0")
        if errors:
            raise ValueError("; ".join(errors))

        values = {column: data.get(key) for key, column in PART_FIELDS.items()}
        values.update({
            "part_number": str(data["partNumber"]).strip(),
            "part_name": str(data["partName"]).strip(),
            "category": category,
            "stock_quantity": quantity,
            "reorder_level": reorder_level,
            "unit_price": unit_price,
            "status": stock_status(quantity, reorder_level, category, status),
        })
        return values

    @staticmethod
    def _to_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "partNumber": row["part_number"],
            "partName": row["part_name"],
            "category": row["category"],
            "brand": row["brand"],
            "projectorModel": row["projector_model"],
            "stockQuantity": row["stock_quantity"],
            "reorderLevel": row["reorder_level"],
            "unitPrice": row["unit_price"],
            "supplier": row["supplier"],
            "location": row["location"],
            "status": row["status"],
            "description": row["description"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


class PurchaseOrderManager:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def create_po(self, data: Dict[str, Any], author: Dict[str, Any], now: Optional[datetime] = None) -> Dict:
        values = self._columns(data)
        values["po_number"] = next_document_number(self.conn, "purchase_orders", "po_number", f"PO-{utcnow():%Y}")
        values["created_by"] = author.get("name") or author.get("username")
        values["created_at"] = values["updated_at"] = utcnow().isoformat()
        if not values["date_raised"]:
            values["date_raised"] = values["created_at"]
        columns = ", ".join(values)
        cursor = self.conn.execute(
            f"INSERT INTO purchase_orders ({columns}) VALUES ({', '.join('?' for _ in values)})",
            list(values.values())
        )
        self.conn.commit()
        app_logger.info("Purchase order created", po_number=values["po_number"], customer=values["customer"],
                        total=values["total_amount"])
        return self.get_po(cursor.lastrowid, now=now)

    def get_po(self, po_id: int, now: Optional[datetime] = None) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM purchase_orders WHERE id = ?", (po_id,)).fetchone()
        return self._to_dict(row, now or utcnow()) if row else None

    def list_pos(self, status: Optional[str] = None, customer: Optional[str] = None,
                 now: Optional[datetime] = None) -> List[Dict]:
        query = "SELECT * FROM purchase_orders WHERE 1 = 1"
        params: List[Any] = []
        if status:
            query += " AND status = ?"
            params.append(status)
        if customer:
            query += " AND customer = ?"
            params.append(customer)
        query += " ORDER BY date_raised DESC, id DESC"
        now = now or utcnow()
        return [self._to_dict(row, now) for row in self.conn.execute(query, params).fetchall()]

    def update_po(self, po_id: int, data: Dict[str, Any], now: Optional[datetime] = None) -> Dict:
        current = self.get_po(po_id)
        if not current:
            raise LookupError(f"Purchase order {po_id} not found")
        values = self._columns({**current, **data})
        values["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in values)
        self.conn.execute(f"UPDATE purchase_orders SET {assignments} WHERE id = ?", list(values.values()) + [po_id])
        self.conn.commit()
        return self.get_po(po_id, now=now)

    def delete_po(self, po_id: int) -> None:
        if not self.get_po(po_id):
            raise LookupError(f"Purchase order {po_id} not found")
        self.conn.execute("DELETE FROM purchase_orders WHERE id = ?", (po_id,))
        self.conn.commit()

    @staticmethod
    def _columns(data: Dict[str, Any]) -> Dict[str, Any]:
        errors = []
        for key in ("customer", "customerSite"):
            if not str(data.get(key) or "").strip():
                errors.append(f"{key} is required")
        priority = data.get("priority") or "Medium"
        if priority not in PRIORITIES:
            errors.append(f"Invalid priority: {priority}. Must be one of: {', '.join(PRIORITIES)}")
        status = data.get("status") or "Draft"
        if status not in PO_STATUSES:
            errors.append(f"Invalid status: {status}. Must be one of: {', '.join(PO_STATUSES)}")
        line_items = data.get("lineItems") or []
        if not isinstance(line_items, list):
            errors.append("lineItems must be a list")
            line_items = []
        dates = {}
        for key in ("dateRaised", "expectedDelivery"):
            dates[key] = parse_date(data.get(key))
            if data.get(key) and dates[key] is None:
                errors.append(f"{key} is not a valid date: {data[key]!r}")
        try:
            totals = po_totals(line_items, float(data.get("taxRate") or 0), float(data.get("discount") or 0))
        except (TypeError, ValueError) as e:
            errors.append(str(e))
            totals = None
        if errors:
            raise ValueError("; ".join(errors))

        return {
            "customer": str(data["customer"]).strip(),
            "customer_site": str(data["customerSite"]).strip(),
            "priority": priority,
            "status": status,
            "date_raised": format_date(dates["dateRaised"]),
            "expected_delivery": format_date(dates["expectedDelivery"]),
            "line_items": json.dumps(totals["lineItems"]),
            "subtotal": totals["subtotal"],
            "tax_rate": totals["taxRate"],
            "tax_amount": totals["taxAmount"],
            "discount": totals["discount"],
            "total_amount": totals["totalAmount"],
            "description": data.get("description"),
        }

    @staticmethod
    def _to_dict(row: sqlite3.Row, now: datetime) -> Dict:
        expected = parse_date(row["expected_delivery"])
        return {
            "id": row["id"],
            "poNumber": row["po_number"],
            "customer": row["customer"],
            "customerSite": row["customer_site"],
            "priority": row["priority"],
            "status": row["status"],
            "dateRaised": row["date_raised"],
            "expectedDelivery": row["expected_delivery"],
            "lineItems": json.loads(row["line_items"]),
            "subtotal": row["subtotal"],
            "taxRate": row["tax_rate"],
            "taxAmount": row["tax_amount"],
            "discount": row["discount"],
            "totalAmount": row["total_amount"],
            "description": row["description"],
            "isOverdue": bool(expected and row["status"] == "Approved" and now > expected),
            "createdBy": row["created_by"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
