"""
Notification Service for RMA Status Changes
Handles creation and retrieval of user notifications
"""

import sqlite3
from typing import Dict, List, Optional


class NotificationService:
    """Service for managing user notifications"""

    STATUS_MESSAGES = {
        'Sent to CDS': ("RMA Sent to CDS", "RMA {rma} has been sent to CDS for approval."),
        'CDS Approved': ("CDS Approved", "CDS approved RMA {rma}. A replacement will be dispatched."),
        'Replacement Shipped': ("Replacement Shipped", "The replacement part for RMA {rma} has been shipped."),
        'Replacement Received': ("Replacement Received", "The replacement part for RMA {rma} has been received on site."),
        'Installation Complete': ("Installation Complete", "The replacement for RMA {rma} has been installed."),
        'Faulty Part Returned': ("Faulty Part Returned", "The faulty part for RMA {rma} is on its way back to CDS."),
        'CDS Confirmed Return': ("Return Confirmed", "CDS confirmed receipt of the faulty part for RMA {rma}."),
        'Completed': ("RMA Completed", "RMA {rma} has been completed."),
        'Rejected': ("RMA Rejected", "RMA {rma} was rejected. Check the case comments for details."),
    }

    @staticmethod
    def create_rma_status_notification(
        conn: sqlite3.Connection,
        user_id: int,
        rma_id: int,
        rma_number: str,
        old_status: Optional[str],
        new_status: str
    ) -> int:
        """
        Create a notification for an RMA status change.

        Returns:
            Notification ID
        """
        default = ("RMA Status Update", "RMA {rma} status changed from {old} to {new}.")
        title, template = NotificationService.STATUS_MESSAGES.get(new_status, default)
        message = template.format(rma=rma_number, old=old_status or "new", new=new_status)

        cursor = conn.execute("""
            INSERT INTO notifications (user_id, type, title, message, rma_id, rma_number)
            VALUES (?, 'RMA_STATUS', ?, ?, ?, ?)
        """, (user_id, title, message, rma_id, rma_number))
        return cursor.lastrowid

    @staticmethod
    def get_user_notifications(
        conn: sqlite3.Connection,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Dict]:
        query = """
            SELECT id, type, title, message, rma_id, rma_number, is_read, read_at, created_at
            FROM notifications
            WHERE user_id = ?
        """
        params = [user_id]

        if unread_only:
            query += " AND is_read = 0"

        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        notifications = []
        for row in conn.execute(query, params).fetchall():
            item = dict(row)
            item['is_read'] = bool(item['is_read'])
            notifications.append(item)
        return notifications

    @staticmethod
    def get_unread_count(conn: sqlite3.Connection, user_id: int) -> int:
        row = conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,)
        ).fetchone()
        return row[0] if row else 0

    @staticmethod
    def mark_as_read(conn: sqlite3.Connection, notification_id: int, user_id: int) -> bool:
        """Mark one notification read; the user_id check keeps users to their own rows."""
        cursor = conn.execute("""
            UPDATE notifications
            SET is_read = 1, read_at = CURRENT_TIMESTAMP
            WHERE id = ? AND user_id = ? AND is_read = 0
        """, (notification_id, user_id))
        conn.commit()
        return cursor.rowcount > 0
