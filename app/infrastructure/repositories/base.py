from __future__ import annotations

import uuid
from typing import Any, Iterable


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without tenant/workspace scope."""


class BaseRepository:
    table_name = ""

    def __init__(self, *, tenant_id: str | None = None, workspace_id: str | None = None) -> None:
        scope = str(tenant_id or workspace_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("tenant_id or workspace_id is required for repository access")
        self.tenant_id = scope
        self.workspace_id = str(workspace_id or tenant_id or "").strip() or scope

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def _insert(self, db, values: dict[str, Any]) -> str:
        record = dict(values)
        record.setdefault("id", self.new_id())
        record["tenant_id"] = self.tenant_id
        columns = list(record.keys())
        placeholders = ", ".join("?" for _ in columns)
        db.execute(
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(record[column] for column in columns),
        )
        return str(record["id"])

    def _get_row(self, db, record_id: str, *, for_update: bool = False) -> dict | None:
        suffix = db.lock_suffix if for_update else ""
        row = db.execute(
            f"""
            SELECT *
            FROM {self.table_name}
            WHERE id = ? AND tenant_id = ?
            LIMIT 1{suffix}
            """,
            (record_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def update_fields(self, db, record_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        updates = [f"{key} = ?" for key in fields.keys()]
        params = list(fields.values())
        params.extend([record_id, self.tenant_id])
        db.execute(
            f"""
            UPDATE {self.table_name}
            SET {", ".join(updates)}
            WHERE id = ? AND tenant_id = ?
            """,
            tuple(params),
        )

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.tenant_id)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]
