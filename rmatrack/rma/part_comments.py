"""Comments attached to a (part name, part number, site) triple."""

from __future__ import annotations
import sqlite3
from typing import Any, Dict, List, Optional

from rmatrack.records import utcnow

COMMENT_TYPES = ("status_update", "issue_note", "resolution", "escalation", "general")
COMMENT_PRIORITIES = ("low", "medium", "high", "critical")
EDITABLE_FIELDS = {
    "comment": "comment",
    "commentType": "comment_type",
    "priority": "priority",
    "isInternal": "is_internal",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class PartCommentManager:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def add_comment(self, part_name: str, part_number: str, site_id: str,
                    data: Dict[str, Any], author: Dict[str, Any]) -> Dict:
        text = (data.get("comment") or "").strip()
        if not text:
            raise ValueError("comment is required")
        comment_type = data.get("commentType") or "general"
        priority = data.get("priority") or "medium"
        self._check_enums(comment_type, priority)

        now = utcnow().isoformat()
        cursor = self.conn.execute("""
            INSERT INTO part_comments (part_name, part_number, site_id, site_name, rma_id, comment,
                                       comment_type, priority, author_name, author_role, author_id,
                                       is_internal, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?, ?)
        """, (
            part_name, part_number, site_id, data.get("siteName") or site_id, data.get("rmaId"), text,
            comment_type, priority, author.get("name") or author.get("username"),
            author.get("role", "rma_handler"), author.get("id"),
            1 if _as_bool(data.get("isInternal", False)) else 0, now, now,
        ))
        self.conn.commit()
        return self.get_comment(cursor.lastrowid)

    def list_comments(self, part_name: str, part_number: str, site_id: Optional[str] = None,
                      include_internal: bool = False, limit: int = 50, skip: int = 0) -> List[Dict]:
        """Active comments, newest first."""
        query = "SELECT * FROM part_comments WHERE part_name = ? AND part_number = ? AND status = 'active'"
        params: List[Any] = [part_name, part_number]
        if site_id is not None:
            query += " AND site_id = ?"
            params.append(site_id)
        if not include_internal:
            query += " AND is_internal = 0"
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, skip])
        return [self._to_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def latest_comment(self, part_name: str, part_number: str, site_id: Optional[str],
                       site_name: Optional[str] = None, include_internal: bool = True) -> Optional[Dict]:
        """
        Newest active comment for the pair. RMA records do not always carry a
        site id, so the site name is accepted as an alternative match.
        """
        query = """
            SELECT * FROM part_comments
            WHERE part_name = ? AND part_number = ? AND status = 'active'
              AND (site_id = ? OR site_name = ?)
        """
        if not include_internal:
            query += " AND is_internal = 0"
        query += " ORDER BY created_at DESC, id DESC LIMIT 1"
        row = self.conn.execute(query, (part_name, part_number, site_id, site_name)).fetchone()
        return self._to_dict(row) if row else None

    def get_comment(self, comment_id: int) -> Optional[Dict]:
        row = self.conn.execute("SELECT * FROM part_comments WHERE id = ?", (comment_id,)).fetchone()
        return self._to_dict(row) if row else None

    def update_comment(self, comment_id: int, data: Dict[str, Any], user: Dict[str, Any]) -> Dict:
        comment = self._require_editable(comment_id, user)
        updates = {column: data[key] for key, column in EDITABLE_FIELDS.items() if key in data}
        if "comment" in updates:
            updates["comment"] = (updates["comment"] or "").strip()
            if not updates["comment"]:
                raise ValueError("comment cannot be empty")
        if "is_internal" in updates:
            updates["is_internal"] = 1 if _as_bool(updates["is_internal"]) else 0
        self._check_enums(updates.get("comment_type", comment["commentType"]),
                          updates.get("priority", comment["priority"]))
        if updates:
            updates["updated_at"] = utcnow().isoformat()
            assignments = ", ".join(f"{column} = ?" for column in updates)
            self.conn.execute(f"UPDATE part_comments SET {assignments} WHERE id = ?",
                              list(updates.values()) + [comment_id])
            self.conn.commit()
        return self.get_comment(comment_id)

    def delete_comment(self, comment_id: int, user: Dict[str, Any]):
        """Soft delete: the row stays with status 'deleted'."""
        self._require_editable(comment_id, user)
        self.conn.execute(
            "UPDATE part_comments SET status = 'deleted', updated_at = ? WHERE id = ?",
            (utcnow().isoformat(), comment_id)
        )
        self.conn.commit()

    def _require_editable(self, comment_id: int, user: Dict[str, Any]) -> Dict:
        comment = self.get_comment(comment_id)
        if not comment or comment["status"] != "active":
            raise LookupError(f"Comment {comment_id} not found")
        if user.get("role") != "admin" and comment["authorId"] != user.get("id"):
            raise PermissionError("Only the comment author or an admin can change this comment")
        return comment

    @staticmethod
    def _check_enums(comment_type: str, priority: str):
        if comment_type not in COMMENT_TYPES:
            raise ValueError(f"Invalid commentType. Must be one of: {', '.join(COMMENT_TYPES)}")
        if priority not in COMMENT_PRIORITIES:
            raise ValueError(f"Invalid priority. Must be one of: {', '.join(COMMENT_PRIORITIES)}")

    @staticmethod
    def _to_dict(row: sqlite3.Row) -> Dict:
        return {
            "id": row["id"],
            "partName": row["part_name"],
            "partNumber": row["part_number"],
            "siteId": row["site_id"],
            "siteName": row["site_name"],
            "rmaId": row["rma_id"],
            "comment": row["comment"],
            "commentType": row["comment_type"],
            "priority": row["priority"],
            "authorName": row["author_name"],
            "authorRole": row["author_role"],
            "authorId": row["author_id"],
            "isInternal": bool(row["is_internal"]),
            "status": row["status"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
