from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List

from app.contexts.rfq.domain.models import to_iso, utc_now
from app.contexts.rfq.infrastructure.repositories import CommentRepository, ProcurementRequestRepository
from app.errors import ValidationError, not_found


logger = logging.getLogger("app")

AUTHOR_ROLES = ("manager", "supplier")
MAX_COMMENT_LENGTH = 4000


def _clean_role(author_role: str) -> str:
    role = str(author_role or "").strip().lower()
    if role not in AUTHOR_ROLES:
        raise ValidationError(code="author_role_invalid", details=f"author_role must be one of {', '.join(AUTHOR_ROLES)}")
    return role


class CommentService:
    """Question and answer thread between the manager and one invited supplier."""

    def __init__(self, now_fn: Callable[[], datetime] = utc_now) -> None:
        self._now = now_fn

    def add_comment(
        self,
        db,
        *,
        tenant_id: str,
        request_id: str,
        supplier_id: str,
        author_id: str,
        author_role: str,
        body: str,
    ) -> str:
        role = _clean_role(author_role)
        text = str(body or "").strip()
        if not text:
            raise ValidationError(code="comment_body_required", details="comment body is required")
        if len(text) > MAX_COMMENT_LENGTH:
            raise ValidationError(code="comment_body_too_long", details=f"comment body exceeds {MAX_COMMENT_LENGTH} chars")
        if not str(supplier_id or "").strip() or not str(author_id or "").strip():
            raise ValidationError(code="comment_participants_required", details="supplier_id and author_id are required")
        if not ProcurementRequestRepository(tenant_id=tenant_id).get_by_id(db, request_id):
            raise not_found("request", request_id)

        comment_id = CommentRepository(tenant_id=tenant_id).create(
            db,
            request_id=request_id,
            supplier_id=supplier_id,
            author_id=author_id,
            author_role=role,
            body=text,
            created_at=to_iso(self._now()) or "",
        )
        db.commit()
        logger.info(
            "rfq_comment_added",
            extra={"tenant_id": tenant_id, "rfq_request_id": request_id, "supplier_id": supplier_id, "author_role": role},
        )
        return comment_id

    def list_comments(self, db, *, tenant_id: str, request_id: str, supplier_id: str) -> List[dict]:
        return CommentRepository(tenant_id=tenant_id).list_thread(db, request_id=request_id, supplier_id=supplier_id)

    def mark_read(self, db, *, tenant_id: str, request_id: str, supplier_id: str, author_role: str) -> int:
        """Mark as read every comment written by ``author_role`` in the thread."""
        updated = CommentRepository(tenant_id=tenant_id).mark_thread_read(
            db,
            request_id=request_id,
            supplier_id=supplier_id,
            author_role=_clean_role(author_role),
        )
        db.commit()
        return updated
