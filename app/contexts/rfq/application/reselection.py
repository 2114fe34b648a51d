from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List

from app.contexts.rfq.application.locks import RequestLockRegistry
from app.contexts.rfq.application.winner_selection import (
    already_awarded,
    load_quotation_for_request,
    load_request_for_update,
    record_rejections,
)
from app.contexts.rfq.domain.models import ProcurementRequest, Quotation, to_iso, utc_now
from app.contexts.rfq.infrastructure.repositories import (
    ProcurementRequestRepository,
    QuotationRepository,
    StatusEventRepository,
)
from app.core import EventBus, WinnerReselected
from app.db import transaction
from app.errors import InvalidStateTransitionError, PolicyViolationError, not_found


logger = logging.getLogger("app")

RESELECTABLE_STATUSES = frozenset({"submitted", "rejected"})


class ReselectionCoordinator:
    """Revokes an awarded winner and awards the request to another supplier.

    The revoked supplier is recorded as ``previous_winner_id`` on the request
    and can never win that request again.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        locks: RequestLockRegistry | None = None,
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.event_bus = event_bus or EventBus()
        self.locks = locks or RequestLockRegistry()
        self._now = now_fn

    def get_eligible_for_reselection(self, db, *, tenant_id: str, request_id: str) -> List[Quotation]:
        row = ProcurementRequestRepository(tenant_id=tenant_id).get_by_id(db, request_id)
        if not row:
            raise not_found("request", request_id)
        request = ProcurementRequest.from_row(row)
        rows = QuotationRepository(tenant_id=tenant_id).list_by_request(db, request_id)
        return [
            quotation
            for quotation in (Quotation.from_row(item) for item in rows)
            if quotation.status != "revoked" and quotation.supplier_id != request.previous_winner_id
        ]

    def revoke_winner(self, db, *, tenant_id: str, request_id: str, manager_id: str, reason: str | None = None) -> Quotation:
        requests = ProcurementRequestRepository(tenant_id=tenant_id)
        quotations = QuotationRepository(tenant_id=tenant_id)
        events = StatusEventRepository(tenant_id=tenant_id)
        reason = (reason or "").strip() or None

        with self.locks.hold(tenant_id, request_id):
            with transaction(db):
                request = load_request_for_update(db, tenant_id, request_id)
                winners = [
                    Quotation.from_row(row)
                    for row in quotations.list_by_request(db, request_id, for_update=True)
                    if row.get("is_winner")
                ]
                if not winners:
                    raise InvalidStateTransitionError("request", request.status, "revoke_winner")
                winner = winners[0]

                now_iso = to_iso(self._now()) or ""
                quotations.update_fields(
                    db,
                    winner.id,
                    {"status": "revoked", "is_winner": False, "updated_at": now_iso},
                )
                requests.update_fields(
                    db,
                    request_id,
                    {
                        "status": "quoting",
                        "previous_winner_id": winner.supplier_id,
                        "winner_id": None,
                        "winner_quotation_id": None,
                        "winner_amount": None,
                        "winner_delivery_days": None,
                        "revoked_at": now_iso,
                        "revocation_reason": reason,
                        "updated_at": now_iso,
                    },
                )
                events.add_event(
                    db,
                    entity="quotation",
                    entity_id=winner.id,
                    from_status=winner.status,
                    to_status="revoked",
                    reason=reason or "winner_revoked",
                    actor_id=manager_id,
                    occurred_at=now_iso,
                )
                events.add_event(
                    db,
                    entity="request",
                    entity_id=request_id,
                    from_status=request.status,
                    to_status="quoting",
                    reason="winner_revoked",
                    actor_id=manager_id,
                    occurred_at=now_iso,
                )

        logger.warning(
            "rfq_winner_revoked",
            extra={
                "tenant_id": tenant_id,
                "rfq_request_id": request_id,
                "quotation_id": winner.id,
                "supplier_id": winner.supplier_id,
                "manager_id": manager_id,
            },
        )
        winner.status = "revoked"
        winner.is_winner = False
        return winner

    def reselect(self, db, *, tenant_id: str, request_id: str, quotation_id: str, manager_id: str) -> Quotation:
        quotations = QuotationRepository(tenant_id=tenant_id)
        requests = ProcurementRequestRepository(tenant_id=tenant_id)
        events = StatusEventRepository(tenant_id=tenant_id)

        with self.locks.hold(tenant_id, request_id):
            with transaction(db):
                request = load_request_for_update(db, tenant_id, request_id)
                if not request.previous_winner_id:
                    raise InvalidStateTransitionError("request", request.status, "reselect")
                candidate = load_quotation_for_request(db, tenant_id, quotation_id, request_id)
                if candidate.supplier_id == request.previous_winner_id:
                    raise PolicyViolationError(
                        code="penalized_supplier",
                        details="the revoked winner cannot be reselected",
                        payload={"supplier_id": candidate.supplier_id},
                    )
                if quotations.count_winners(db, request_id) > 0:
                    raise already_awarded("reselect", request)
                if candidate.status not in RESELECTABLE_STATUSES:
                    raise InvalidStateTransitionError("quotation", candidate.status, "reselect")

                now_iso = to_iso(self._now()) or ""
                quotations.update_fields(
                    db,
                    candidate.id,
                    {
                        "status": "selected",
                        "is_winner": True,
                        "is_reselection": True,
                        "selected_at": now_iso,
                        "updated_at": now_iso,
                    },
                )
                rejected = quotations.reject_competitors(
                    db,
                    request_id,
                    winner_id=candidate.id,
                    keep_statuses=("cancelled", "revoked"),
                )
                requests.update_fields(
                    db,
                    request_id,
                    {
                        "status": "awarded",
                        "winner_id": candidate.supplier_id,
                        "winner_quotation_id": candidate.id,
                        "winner_amount": candidate.total_amount,
                        "winner_delivery_days": candidate.delivery_days,
                        "adjudicated_at": now_iso,
                        "updated_at": now_iso,
                    },
                )
                events.add_event(
                    db,
                    entity="quotation",
                    entity_id=candidate.id,
                    from_status=candidate.status,
                    to_status="selected",
                    reason="winner_reselected",
                    actor_id=manager_id,
                    occurred_at=now_iso,
                )
                record_rejections(events, db, rejected, actor_id=manager_id, occurred_at=now_iso)
                events.add_event(
                    db,
                    entity="request",
                    entity_id=request_id,
                    from_status=request.status,
                    to_status="awarded",
                    reason="winner_reselected",
                    actor_id=manager_id,
                    occurred_at=now_iso,
                )

        logger.info(
            "rfq_winner_reselected",
            extra={
                "tenant_id": tenant_id,
                "rfq_request_id": request_id,
                "quotation_id": candidate.id,
                "supplier_id": candidate.supplier_id,
                "previous_winner_id": request.previous_winner_id,
            },
        )
        self.event_bus.publish(
            WinnerReselected(
                tenant_id=tenant_id,
                request_id=request_id,
                quotation_id=candidate.id,
                winner_supplier_id=candidate.supplier_id,
                winner_supplier_name=candidate.supplier_name,
                previous_winner_id=request.previous_winner_id,
                manager_id=manager_id,
            )
        )
        candidate.status = "selected"
        candidate.is_winner = True
        candidate.is_reselection = True
        candidate.selected_at = now_iso
        return candidate
