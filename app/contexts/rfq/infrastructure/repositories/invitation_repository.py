from __future__ import annotations

from typing import Any

from app.infrastructure.repositories.base import BaseRepository


class InvitationRepository(BaseRepository):
    table_name = "quotation_invitations"

    def create(
        self,
        db,
        *,
        request_id: str,
        supplier_id: str,
        manager_id: str,
        due_date: str | None,
        created_at: str,
        message: str | None = None,
        delivery_address: str | None = None,
    ) -> str:
        return self._insert(
            db,
            {
                "request_id": request_id,
                "supplier_id": supplier_id,
                "manager_id": manager_id,
                "status": "pending",
                "due_date": due_date,
                "message": message,
                "delivery_address": delivery_address,
                "created_at": created_at,
            },
        )

    def get_by_id(self, db, invitation_id: str, *, for_update: bool = False) -> dict | None:
        return self._get_row(db, invitation_id, for_update=for_update)

    def update_if_status(
        self,
        db,
        invitation_id: str,
        *,
        from_statuses: tuple[str, ...],
        fields: dict[str, Any],
    ) -> bool:
        assignments = ", ".join(f"{key} = ?" for key in fields)
        placeholders = ", ".join("?" for _ in from_statuses)
        cursor = db.execute(
            f"""
            UPDATE {self.table_name}
            SET {assignments}
            WHERE id = ? AND tenant_id = ? AND status IN ({placeholders})
            """,
            (*fields.values(), invitation_id, self.tenant_id, *from_statuses),
        )
        return int(cursor.rowcount or 0) > 0

    def list_by_request(self, db, request_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM quotation_invitations
            WHERE request_id = ? AND tenant_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (request_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_supplier(self, db, supplier_id: str, *, limit: int = 200) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM quotation_invitations
            WHERE supplier_id = ? AND tenant_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (supplier_id, self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
