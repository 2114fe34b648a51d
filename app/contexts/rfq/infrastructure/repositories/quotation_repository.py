from __future__ import annotations

import json
from typing import Any

from app.infrastructure.repositories.base import BaseRepository


class QuotationRepository(BaseRepository):
    table_name = "quotations"

    def create(
        self,
        db,
        *,
        invitation_id: str,
        request_id: str,
        supplier_id: str,
        supplier_name: str,
        total_amount: float,
        currency: str,
        delivery_days: int,
        delivery_date: str | None,
        payment_terms: str,
        valid_until: str,
        notes: str,
        attachments: list[str],
        submitted_at: str,
    ) -> str:
        return self._insert(
            db,
            {
                "invitation_id": invitation_id,
                "request_id": request_id,
                "supplier_id": supplier_id,
                "supplier_name": supplier_name,
                "total_amount": total_amount,
                "currency": currency,
                "delivery_days": delivery_days,
                "delivery_date": delivery_date,
                "payment_terms": payment_terms,
                "valid_until": valid_until,
                "notes": notes,
                "attachments": json.dumps(list(attachments)),
                "status": "submitted",
                "is_winner": False,
                "is_reselection": False,
                "submitted_at": submitted_at,
                "updated_at": submitted_at,
            },
        )

    def get_by_id(self, db, quotation_id: str, *, for_update: bool = False) -> dict | None:
        return self._get_row(db, quotation_id, for_update=for_update)

    def update_fields(self, db, quotation_id: str, fields: dict[str, Any]) -> None:
        if "attachments" in fields and not isinstance(fields["attachments"], str):
            fields = {**fields, "attachments": json.dumps(list(fields["attachments"] or []))}
        super().update_fields(db, quotation_id, fields)

    def list_by_request(self, db, request_id: str, *, for_update: bool = False) -> list[dict]:
        suffix = db.lock_suffix if for_update else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM quotations
            WHERE request_id = ? AND tenant_id = ?
            ORDER BY submitted_at DESC, id DESC{suffix}
            """,
            (request_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_supplier(self, db, supplier_id: str, *, limit: int = 200) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM quotations
            WHERE supplier_id = ? AND tenant_id = ?
            ORDER BY submitted_at DESC, id DESC
            LIMIT ?
            """,
            (supplier_id, self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_winners(self, db, request_id: str) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM quotations
            WHERE request_id = ? AND tenant_id = ? AND is_winner = ?
            """,
            (request_id, self.tenant_id, True),
        ).fetchone()
        if not row:
            return 0
        return int(row["total"] if isinstance(row, dict) else row[0])

    def reject_competitors(self, db, request_id: str, *, winner_id: str, keep_statuses: tuple[str, ...]) -> list[dict]:
        """Mark every other quotation of the request as rejected; returns the rows that changed."""
        placeholders = ", ".join("?" for _ in keep_statuses)
        rows = db.execute(
            f"""
            SELECT id, supplier_id, supplier_name, status
            FROM quotations
            WHERE request_id = ? AND tenant_id = ? AND id <> ? AND status NOT IN ({placeholders})
            """,
            (request_id, self.tenant_id, winner_id, *keep_statuses),
        ).fetchall()
        changed = self.rows_to_dicts(rows)
        if changed:
            db.execute(
                f"""
                UPDATE quotations
                SET status = 'rejected', is_winner = ?
                WHERE request_id = ? AND tenant_id = ? AND id <> ? AND status NOT IN ({placeholders})
                """,
                (False, request_id, self.tenant_id, winner_id, *keep_statuses),
            )
        return changed
