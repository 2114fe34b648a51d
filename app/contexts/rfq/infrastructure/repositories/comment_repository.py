from __future__ import annotations

from app.infrastructure.repositories.base import BaseRepository


class CommentRepository(BaseRepository):
    table_name = "quotation_comments"

    def create(
        self,
        db,
        *,
        request_id: str,
        supplier_id: str,
        author_id: str,
        author_role: str,
        body: str,
        created_at: str,
    ) -> str:
        return self._insert(
            db,
            {
                "request_id": request_id,
                "supplier_id": supplier_id,
                "author_id": author_id,
                "author_role": author_role,
                "body": body,
                "read": False,
                "created_at": created_at,
            },
        )

    def list_thread(self, db, *, request_id: str, supplier_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, request_id, supplier_id, author_id, author_role, body, read, created_at
            FROM quotation_comments
            WHERE request_id = ? AND supplier_id = ? AND tenant_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (request_id, supplier_id, self.tenant_id),
        ).fetchall()
        items = self.rows_to_dicts(rows)
        for item in items:
            item["read"] = bool(item.get("read"))
        return items

    def mark_thread_read(self, db, *, request_id: str, supplier_id: str, author_role: str) -> int:
        cursor = db.execute(
            """
            UPDATE quotation_comments
            SET read = ?
            WHERE request_id = ? AND supplier_id = ? AND author_role = ? AND tenant_id = ? AND read = ?
            """,
            (True, request_id, supplier_id, author_role, self.tenant_id, False),
        )
        return int(cursor.rowcount or 0)
