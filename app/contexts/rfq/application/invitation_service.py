from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Tuple

from app.contexts.rfq.domain.models import (
    PRE_QUOTING_REQUEST_STATUSES,
    Invitation,
    ProcurementRequest,
    normalize_date_value,
    to_iso,
    utc_now,
)
from app.contexts.rfq.infrastructure.repositories import (
    InvitationRepository,
    ProcurementRequestRepository,
    StatusEventRepository,
)
from app.core import EventBus, InvitationsSent
from app.db import transaction
from app.errors import InvalidStateTransitionError, ValidationError, not_found


logger = logging.getLogger("app")

DECLINABLE_INVITATION_STATUSES = ("pending", "viewed")


def _normalize_supplier_ids(supplier_ids: Iterable[str] | None) -> List[str]:
    normalized: List[str] = []
    for raw in supplier_ids or []:
        supplier_id = str(raw or "").strip()
        if supplier_id and supplier_id not in normalized:
            normalized.append(supplier_id)
    return normalized


class InvitationService:
    """Invitation records and their pending -> viewed -> quoted/declined transitions.

    Callers are expected to invite a supplier at most once per request; the
    store does not enforce uniqueness of (request_id, supplier_id).
    """

    def __init__(self, event_bus: EventBus | None = None, now_fn: Callable[[], datetime] = utc_now) -> None:
        self.event_bus = event_bus or EventBus()
        self._now = now_fn

    def get(self, db, *, tenant_id: str, invitation_id: str, for_update: bool = False) -> Invitation:
        row = InvitationRepository(tenant_id=tenant_id).get_by_id(db, invitation_id, for_update=for_update)
        if not row:
            raise not_found("invitation", invitation_id)
        return Invitation.from_row(row)

    def list_by_request(self, db, *, tenant_id: str, request_id: str) -> List[Invitation]:
        rows = InvitationRepository(tenant_id=tenant_id).list_by_request(db, request_id)
        return [Invitation.from_row(row) for row in rows]

    def list_by_supplier(self, db, *, tenant_id: str, supplier_id: str) -> List[Invitation]:
        rows = InvitationRepository(tenant_id=tenant_id).list_by_supplier(db, supplier_id)
        return [Invitation.from_row(row) for row in rows]

    def invite(
        self,
        db,
        *,
        tenant_id: str,
        request_id: str,
        supplier_ids: Iterable[str],
        manager_id: str,
        due_date: datetime | date | str,
        message: str | None = None,
        delivery_address: str | None = None,
    ) -> List[str]:
        suppliers = _normalize_supplier_ids(supplier_ids)
        if not suppliers:
            raise ValidationError(code="suppliers_required", details="at least one supplier must be invited")
        manager_id = str(manager_id or "").strip()
        if not manager_id:
            raise ValidationError(code="manager_required", details="manager_id is required")
        try:
            due_date_iso = normalize_date_value(due_date)
        except ValueError as exc:
            raise ValidationError(code="due_date_invalid", details=str(exc), payload={"field": "due_date"}) from exc
        if not due_date_iso:
            raise ValidationError(code="due_date_required", details="due_date is required")

        requests = ProcurementRequestRepository(tenant_id=tenant_id)
        invitations = InvitationRepository(tenant_id=tenant_id)
        events = StatusEventRepository(tenant_id=tenant_id)
        now_iso = to_iso(self._now()) or ""

        with transaction(db):
            row = requests.get_by_id(db, request_id, for_update=True)
            if not row:
                raise not_found("request", request_id)
            request = ProcurementRequest.from_row(row)

            invitation_ids = [
                invitations.create(
                    db,
                    request_id=request_id,
                    supplier_id=supplier_id,
                    manager_id=manager_id,
                    due_date=due_date_iso,
                    created_at=now_iso,
                    message=(message or "").strip() or None,
                    delivery_address=(delivery_address or "").strip() or None,
                )
                for supplier_id in suppliers
            ]

            if request.status in PRE_QUOTING_REQUEST_STATUSES:
                requests.update_fields(
                    db,
                    request_id,
                    {"status": "quoting", "quotation_started_at": now_iso, "updated_at": now_iso},
                )
                events.add_event(
                    db,
                    entity="request",
                    entity_id=request_id,
                    from_status=request.status,
                    to_status="quoting",
                    reason="invitations_sent",
                    actor_id=manager_id,
                    occurred_at=now_iso,
                )

        logger.info(
            "rfq_invitations_sent",
            extra={"tenant_id": tenant_id, "rfq_request_id": request_id, "supplier_count": len(suppliers)},
        )
        self.event_bus.publish(
            InvitationsSent(
                tenant_id=tenant_id,
                request_id=request_id,
                invitation_ids=tuple(invitation_ids),
                supplier_ids=tuple(suppliers),
                manager_id=manager_id,
                due_date=due_date_iso,
                request_meta=request.meta(),
                requester_email=request.requester_email or "",
            )
        )
        return invitation_ids

    def _move(
        self,
        db,
        *,
        tenant_id: str,
        invitation_id: str,
        from_statuses: Tuple[str, ...],
        fields: Dict[str, Any],
    ) -> Invitation | None:
        """Apply ``fields`` only while the row is still in ``from_statuses``.

        Returns ``None`` when a concurrent writer moved the invitation first.
        """
        moved = InvitationRepository(tenant_id=tenant_id).update_if_status(
            db,
            invitation_id,
            from_statuses=from_statuses,
            fields=fields,
        )
        if not moved:
            return None
        return self.get(db, tenant_id=tenant_id, invitation_id=invitation_id)

    def mark_viewed(self, db, *, tenant_id: str, invitation_id: str) -> Invitation:
        now_iso = to_iso(self._now())
        with transaction(db):
            invitation = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id, for_update=True)
            if invitation.status in {"viewed", "quoted"}:
                return invitation
            if invitation.status == "declined":
                raise InvalidStateTransitionError("invitation", invitation.status, "mark_viewed")
            updated = self._move(
                db,
                tenant_id=tenant_id,
                invitation_id=invitation_id,
                from_statuses=("pending",),
                fields={"status": "viewed", "viewed_at": now_iso, "updated_at": now_iso},
            )
            current = updated or self.get(db, tenant_id=tenant_id, invitation_id=invitation_id)
        if current.status == "declined":
            raise InvalidStateTransitionError("invitation", current.status, "mark_viewed")
        return current

    def decline(self, db, *, tenant_id: str, invitation_id: str) -> Invitation:
        with transaction(db):
            invitation = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id, for_update=True)
            if invitation.status not in DECLINABLE_INVITATION_STATUSES:
                raise InvalidStateTransitionError("invitation", invitation.status, "decline")
            updated = self._move(
                db,
                tenant_id=tenant_id,
                invitation_id=invitation_id,
                from_statuses=DECLINABLE_INVITATION_STATUSES,
                fields={"status": "declined", "updated_at": to_iso(self._now())},
            )
            current = updated or self.get(db, tenant_id=tenant_id, invitation_id=invitation_id)
        # Nothing was written when the row left pending/viewed after it was read.
        if updated is None:
            raise InvalidStateTransitionError("invitation", current.status, "decline")
        logger.info(
            "rfq_invitation_declined",
            extra={"tenant_id": tenant_id, "invitation_id": invitation_id, "supplier_id": current.supplier_id},
        )
        return current

    def link_quotation(self, db, *, tenant_id: str, invitation_id: str, quotation_id: str) -> Invitation:
        with transaction(db):
            invitation = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id, for_update=True)
            if invitation.status == "declined":
                raise InvalidStateTransitionError("invitation", invitation.status, "link_quotation")
            updated = self._move(
                db,
                tenant_id=tenant_id,
                invitation_id=invitation_id,
                from_statuses=("pending", "viewed", "quoted"),
                fields={"status": "quoted", "quotation_id": quotation_id, "updated_at": to_iso(self._now())},
            )
            if updated is None:
                current = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id)
                raise InvalidStateTransitionError("invitation", current.status, "link_quotation")
        return updated

    def revert_to_viewed(self, db, *, tenant_id: str, invitation_id: str) -> Invitation:
        # quotation_id stays on the row as history of the withdrawn offer.
        with transaction(db):
            invitation = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id, for_update=True)
            if invitation.status == "viewed":
                return invitation
            if invitation.status != "quoted":
                raise InvalidStateTransitionError("invitation", invitation.status, "revert_to_viewed")
            updated = self._move(
                db,
                tenant_id=tenant_id,
                invitation_id=invitation_id,
                from_statuses=("quoted",),
                fields={"status": "viewed", "updated_at": to_iso(self._now())},
            )
            if updated is None:
                current = self.get(db, tenant_id=tenant_id, invitation_id=invitation_id)
                raise InvalidStateTransitionError("invitation", current.status, "revert_to_viewed")
        return updated
