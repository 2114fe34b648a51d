from __future__ import annotations

from typing import Any

from app.contexts.rfq.domain.models import to_iso, utc_now
from app.infrastructure.repositories.base import BaseRepository


class ProcurementRequestRepository(BaseRepository):
    table_name = "procurement_requests"

    def create(
        self,
        db,
        *,
        request_id: str | None = None,
        status: str = "pending",
        code: str | None = None,
        title: str | None = None,
        description: str | None = None,
        requester_id: str | None = None,
        requester_email: str | None = None,
        due_date: str | None = None,
    ) -> str:
        values: dict[str, Any] = {
            "status": status,
            "code": code,
            "title": title,
            "description": description,
            "requester_id": requester_id,
            "requester_email": requester_email,
            "due_date": due_date,
        }
        if request_id:
            values["id"] = request_id
        return self._insert(db, values)

    def get_by_id(self, db, request_id: str, *, for_update: bool = False) -> dict | None:
        return self._get_row(db, request_id, for_update=for_update)

    def update_fields(self, db, request_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        stamped = dict(fields)
        stamped.setdefault("updated_at", to_iso(utc_now()))
        super().update_fields(db, request_id, stamped)
