from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List

from app.contexts.rfq.application.locks import RequestLockRegistry
from app.contexts.rfq.domain.models import ProcurementRequest, Quotation, to_iso, utc_now
from app.contexts.rfq.infrastructure.repositories import (
    ProcurementRequestRepository,
    QuotationRepository,
    StatusEventRepository,
)
from app.core import EventBus, WinnerSelected
from app.db import transaction
from app.errors import (
    AlreadyAwardedError,
    InvalidStateTransitionError,
    PolicyViolationError,
    ValidationError,
    not_found,
)
from app.observability import observe_transaction_conflict


logger = logging.getLogger("app")


def load_request_for_update(db, tenant_id: str, request_id: str) -> ProcurementRequest:
    row = ProcurementRequestRepository(tenant_id=tenant_id).get_by_id(db, request_id, for_update=True)
    if not row:
        raise not_found("request", request_id)
    return ProcurementRequest.from_row(row)


def load_quotation_for_request(db, tenant_id: str, quotation_id: str, request_id: str) -> Quotation:
    row = QuotationRepository(tenant_id=tenant_id).get_by_id(db, quotation_id, for_update=True)
    if not row:
        raise not_found("quotation", quotation_id)
    quotation = Quotation.from_row(row)
    if quotation.request_id != request_id:
        raise ValidationError(
            code="quotation_request_mismatch",
            details="quotation does not belong to the given request",
            payload={"quotation_id": quotation_id, "request_id": request_id},
        )
    return quotation


def already_awarded(operation: str, request: ProcurementRequest) -> AlreadyAwardedError:
    observe_transaction_conflict(operation)
    return AlreadyAwardedError(
        details=f"request {request.id} already has a winner",
        payload={"request_id": request.id, "winner_quotation_id": request.winner_quotation_id},
    )


def record_rejections(events: StatusEventRepository, db, rejected: List[dict], *, actor_id: str | None, occurred_at: str) -> None:
    for item in rejected:
        if item.get("status") == "rejected":
            continue
        events.add_event(
            db,
            entity="quotation",
            entity_id=str(item["id"]),
            from_status=item.get("status"),
            to_status="rejected",
            reason="competitor_selected",
            actor_id=actor_id,
            occurred_at=occurred_at,
        )


class WinnerSelectionCoordinator:
    """Awards a request to one quotation, at most once.

    The per-request lock serializes callers inside this process; the
    transaction re-reads the request and the winner count under a write lock
    so concurrent processes sharing the database are serialized as well.
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

    def select_winner(
        self,
        db,
        *,
        tenant_id: str,
        quotation_id: str,
        request_id: str,
        requester_user_id: str,
    ) -> Quotation:
        requests = ProcurementRequestRepository(tenant_id=tenant_id)
        quotations = QuotationRepository(tenant_id=tenant_id)
        events = StatusEventRepository(tenant_id=tenant_id)

        with self.locks.hold(tenant_id, request_id):
            with transaction(db):
                request = load_request_for_update(db, tenant_id, request_id)
                if request.status == "awarded" or quotations.count_winners(db, request_id) > 0:
                    raise already_awarded("select_winner", request)

                winner = load_quotation_for_request(db, tenant_id, quotation_id, request_id)
                if winner.status != "submitted":
                    raise InvalidStateTransitionError("quotation", winner.status, "select_winner")
                if request.previous_winner_id and winner.supplier_id == request.previous_winner_id:
                    raise PolicyViolationError(
                        code="penalized_supplier",
                        details="the revoked winner cannot be awarded this request again",
                        payload={"supplier_id": winner.supplier_id},
                    )

                now_iso = to_iso(self._now()) or ""
                quotations.update_fields(
                    db,
                    winner.id,
                    {"status": "selected", "is_winner": True, "selected_at": now_iso, "updated_at": now_iso},
                )
                rejected = quotations.reject_competitors(
                    db,
                    request_id,
                    winner_id=winner.id,
                    keep_statuses=("cancelled", "revoked"),
                )
                requests.update_fields(
                    db,
                    request_id,
                    {
                        "status": "awarded",
                        "winner_id": winner.supplier_id,
                        "winner_quotation_id": winner.id,
                        "winner_amount": winner.total_amount,
                        "winner_delivery_days": winner.delivery_days,
                        "adjudicated_at": now_iso,
                        "updated_at": now_iso,
                    },
                )
                events.add_event(
                    db,
                    entity="quotation",
                    entity_id=winner.id,
                    from_status=winner.status,
                    to_status="selected",
                    reason="winner_selected",
                    actor_id=requester_user_id,
                    occurred_at=now_iso,
                )
                record_rejections(events, db, rejected, actor_id=requester_user_id, occurred_at=now_iso)
                events.add_event(
                    db,
                    entity="request",
                    entity_id=request_id,
                    from_status=request.status,
                    to_status="awarded",
                    reason="winner_selected",
                    actor_id=requester_user_id,
                    occurred_at=now_iso,
                )

        rejected_suppliers = tuple(
            dict.fromkeys(
                str(item["supplier_id"])
                for item in rejected
                if item.get("status") != "rejected" and str(item["supplier_id"]) != winner.supplier_id
            )
        )
        logger.info(
            "rfq_winner_selected",
            extra={
                "tenant_id": tenant_id,
                "rfq_request_id": request_id,
                "quotation_id": winner.id,
                "supplier_id": winner.supplier_id,
                "rejected_count": len(rejected),
            },
        )
        self.event_bus.publish(
            WinnerSelected(
                tenant_id=tenant_id,
                request_id=request_id,
                quotation_id=winner.id,
                winner_supplier_id=winner.supplier_id,
                winner_supplier_name=winner.supplier_name,
                requester_user_id=str(requester_user_id or ""),
                rejected_supplier_ids=rejected_suppliers,
                amount=winner.total_amount,
                currency=winner.currency,
                request_meta=request.meta(),
                requester_email=request.requester_email or "",
            )
        )
        winner.status = "selected"
        winner.is_winner = True
        winner.selected_at = now_iso
        return winner
