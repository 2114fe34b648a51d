from __future__ import annotations

from app.infrastructure.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    table_name = "notifications"

    def create(
        self,
        db,
        *,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        related_id: str | None,
        related_type: str | None,
        created_at: str,
    ) -> str:
        return self._insert(
            db,
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "message": message,
                "related_id": related_id,
                "related_type": related_type,
                "read": False,
                "created_at": created_at,
            },
        )

    def list_for_user(self, db, user_id: str, *, limit: int = 50, unread_only: bool = False) -> list[dict]:
        unread_clause = " AND read = ?" if unread_only else ""
        params: tuple = (user_id, self.tenant_id, False) if unread_only else (user_id, self.tenant_id)
        rows = db.execute(
            f"""
            SELECT id, user_id, type, title, message, related_id, related_type, read, created_at
            FROM notifications
            WHERE user_id = ? AND tenant_id = ?{unread_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        items = self.rows_to_dicts(rows)
        for item in items:
            item["read"] = bool(item.get("read"))
        return items

    def count_unread(self, db, user_id: str) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM notifications
            WHERE user_id = ? AND tenant_id = ? AND read = ?
            """,
            (user_id, self.tenant_id, False),
        ).fetchone()
        if not row:
            return 0
        return int(row["total"] if isinstance(row, dict) else row[0])

    def mark_read(self, db, notification_id: str, *, user_id: str) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET read = ? WHERE id = ? AND user_id = ? AND tenant_id = ?",
            (True, notification_id, user_id, self.tenant_id),
        )
        return bool(cursor.rowcount)

    def mark_all_read(self, db, user_id: str) -> int:
        cursor = db.execute(
            "UPDATE notifications SET read = ? WHERE user_id = ? AND tenant_id = ? AND read = ?",
            (True, user_id, self.tenant_id, False),
        )
        return int(cursor.rowcount or 0)
