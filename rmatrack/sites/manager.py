"""Sites and the projectors installed at them."""

from __future__ import annotations
import sqlite3
from typing import Any, Dict, List, Optional


class SiteManager:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def create_site(self, name: str, code: Optional[str] = None, region: Optional[str] = None) -> Dict:
        name = (name or "").strip()
        if not name:
            raise ValueError("name is required")
        if self.conn.execute("SELECT 1 FROM sites WHERE name = ?", (name,)).fetchone():
            raise ValueError(f"Site already exists: {name}")
        cursor = self.conn.execute(
            "INSERT INTO sites (name, code, region) VALUES (?, ?, ?)", (name, code, region)
        )
        self.conn.commit()
        return self.get_site(cursor.lastrowid)

    def get_site(self, site_id: int) -> Optional[Dict]:
        row = self.conn.execute("""
            SELECT s.*, COUNT(p.id) AS projector_count
            FROM sites s LEFT JOIN projectors p ON p.site_id = s.id
            WHERE s.id = ?
            GROUP BY s.id
        """, (site_id,)).fetchone()
        if not row:
            return None
        site = self._site_dict(row)
        site["projectors"] = self.list_projectors(site_id=site_id)
        return site

    def list_sites(self, region: Optional[str] = None) -> List[Dict]:
        query = """
            SELECT s.*, COUNT(p.id) AS projector_count
            FROM sites s LEFT JOIN projectors p ON p.site_id = s.id
        """
        params: List[Any] = []
        if region:
            query += " WHERE s.region = ?"
            params.append(region)
        query += " GROUP BY s.id ORDER BY s.name"
        return [self._site_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def create_projector(self, data: Dict[str, Any]) -> Dict:
        serial = (data.get("serialNumber") or "").strip()
        if not serial:
            raise ValueError("serialNumber is required")
        site_id = data.get("siteId")
        if site_id is not None and not self.conn.execute("SELECT 1 FROM sites WHERE id = ?", (site_id,)).fetchone():
            raise ValueError(f"Site {site_id} does not exist")
        if self.get_projector(serial):
            raise ValueError(f"Projector already exists: {serial}")
        self.conn.execute(
            "INSERT INTO projectors (serial_number, site_id, model, brand, part_number) VALUES (?, ?, ?, ?, ?)",
            (serial, site_id, data.get("model"), data.get("brand"), data.get("partNumber"))
        )
        self.conn.commit()
        return self.get_projector(serial)

    def get_projector(self, serial_number: str) -> Optional[Dict]:
        row = self.conn.execute("""
            SELECT p.*, s.name AS site_name
            FROM projectors p LEFT JOIN sites s ON s.id = p.site_id
            WHERE p.serial_number = ?
        """, (serial_number,)).fetchone()
        return self._projector_dict(row) if row else None

    def list_projectors(self, site_id: Optional[int] = None) -> List[Dict]:
        query = """
            SELECT p.*, s.name AS site_name
            FROM projectors p LEFT JOIN sites s ON s.id = p.site_id
        """
        params: List[Any] = []
        if site_id is not None:
            query += " WHERE p.site_id = ?"
            params.append(site_id)
        query += " ORDER BY p.serial_number"
        return [self._projector_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def projector_counts(self) -> Dict[str, int]:
        """Projector count per site name."""
        rows = self.conn.execute("""
            SELECT s.name AS name, COUNT(p.id) AS n
            FROM sites s LEFT JOIN projectors p ON p.site_id = s.id
            GROUP BY s.id
        """).fetchall()
        return {row["name"]: row["n"] for row in rows}

    @staticmethod
    def _site_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "name": row["name"],
            "code": row["code"],
            "region": row["region"],
            "projectorCount": row["projector_count"],
            "createdAt": row["created_at"],
        }

    @staticmethod
    def _projector_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "serialNumber": row["serial_number"],
            "siteId": row["site_id"],
            "siteName": row["site_name"],
            "model": row["model"],
            "brand": row["brand"],
            "partNumber": row["part_number"],
        }
