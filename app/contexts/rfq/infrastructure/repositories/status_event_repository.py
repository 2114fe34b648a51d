from __future__ import annotations

from app.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    table_name = "status_events"

    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: str,
        from_status: str | None,
        to_status: str | None,
        reason: str | None,
        occurred_at: str,
        actor_id: str | None = None,
    ) -> str:
        return self._insert(
            db,
            {
                "entity": entity,
                "entity_id": entity_id,
                "from_status": from_status,
                "to_status": to_status,
                "reason": reason,
                "actor_id": actor_id,
                "occurred_at": occurred_at,
            },
        )

    def list_for_entity(self, db, *, entity: str, entity_id: str, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at, tenant_id
            FROM status_events
            WHERE entity = ? AND entity_id = ? AND tenant_id = ?
            ORDER BY occurred_at DESC, id DESC
            LIMIT ?
            """,
            (entity, entity_id, self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
