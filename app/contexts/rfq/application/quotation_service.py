from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping

from app.contexts.rfq.application.invitation_service import InvitationService
from app.contexts.rfq.domain.business_days import add_business_days
from app.contexts.rfq.domain.models import (
    CURRENCIES,
    EDITABLE_QUOTATION_STATUSES,
    Quotation,
    QuotationInput,
    normalize_date_value,
    to_iso,
    utc_now,
)
from app.contexts.rfq.domain.ranking import DEFAULT_WEIGHTS, RankingWeights, rank_quotations
from app.contexts.rfq.infrastructure.repositories import QuotationRepository, StatusEventRepository
from app.core import EventBus, QuotationSubmitted
from app.db import transaction
from app.errors import InvalidStateTransitionError, ValidationError, not_found


logger = logging.getLogger("app")

QUOTATION_FIELDS = (
    "total_amount",
    "currency",
    "delivery_days",
    "payment_terms",
    "valid_until",
    "notes",
    "attachments",
)
REQUIRED_QUOTATION_FIELDS = ("total_amount", "currency", "delivery_days", "payment_terms", "valid_until")


def _invalid(field_name: str, details: str) -> ValidationError:
    return ValidationError(code=f"{field_name}_invalid", details=details, payload={"field": field_name})


def _clean_amount(value: Any) -> float:
    if isinstance(value, bool):
        raise _invalid("total_amount", "total_amount must be a number")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise _invalid("total_amount", "total_amount must be a number") from exc
    if amount != amount or amount <= 0:
        raise _invalid("total_amount", "total_amount must be greater than zero")
    return amount


def _clean_currency(value: Any) -> str:
    currency = str(value or "").strip().upper()
    if currency not in CURRENCIES:
        raise _invalid("currency", f"currency must be one of {', '.join(CURRENCIES)}")
    return currency


def _clean_days(value: Any) -> int:
    if isinstance(value, bool):
        raise _invalid("delivery_days", "delivery_days must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise _invalid("delivery_days", "delivery_days must be an integer")
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise _invalid("delivery_days", "delivery_days must be an integer") from exc
    if days <= 0:
        raise _invalid("delivery_days", "delivery_days must be greater than zero")
    return days


def _clean_text(field_name: str, value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise _invalid(field_name, f"{field_name} is required")
    return text


def _clean_valid_until(value: datetime | date | str | None) -> str:
    try:
        valid_until = normalize_date_value(value)
    except ValueError as exc:
        raise _invalid("valid_until", str(exc)) from exc
    if not valid_until:
        raise _invalid("valid_until", "valid_until is required")
    return valid_until


def _clean_attachments(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise _invalid("attachments", "attachments must be a list of references")
    return [str(item).strip() for item in value if str(item or "").strip()]


_CLEANERS: Dict[str, Callable[[Any], Any]] = {
    "total_amount": _clean_amount,
    "currency": _clean_currency,
    "delivery_days": _clean_days,
    "payment_terms": lambda value: _clean_text("payment_terms", value),
    "valid_until": _clean_valid_until,
    "notes": lambda value: str(value or "").strip(),
    "attachments": _clean_attachments,
}


def normalize_quotation_fields(values: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    unknown = sorted(set(values) - set(QUOTATION_FIELDS))
    if unknown:
        raise ValidationError(
            code="quotation_fields_unknown",
            details=f"unknown quotation fields: {', '.join(unknown)}",
            payload={"fields": unknown},
        )
    if not partial:
        missing = [name for name in REQUIRED_QUOTATION_FIELDS if values.get(name) in (None, "")]
        if missing:
            raise ValidationError(
                code="quotation_fields_missing",
                details=f"missing quotation fields: {', '.join(missing)}",
                payload={"fields": missing},
            )
    cleaned = {name: _CLEANERS[name](value) for name, value in values.items()}
    if not partial:
        cleaned.setdefault("notes", "")
        cleaned.setdefault("attachments", [])
    return cleaned


class QuotationService:
    def __init__(
        self,
        invitations: InvitationService,
        event_bus: EventBus | None = None,
        now_fn: Callable[[], datetime] = utc_now,
        weights: RankingWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.invitations = invitations
        self.event_bus = event_bus or EventBus()
        self._now = now_fn
        self.weights = weights

    def get(self, db, *, tenant_id: str, quotation_id: str) -> Quotation:
        row = QuotationRepository(tenant_id=tenant_id).get_by_id(db, quotation_id)
        if not row:
            raise not_found("quotation", quotation_id)
        return Quotation.from_row(row)

    def list_by_request(self, db, *, tenant_id: str, request_id: str) -> List[Quotation]:
        rows = QuotationRepository(tenant_id=tenant_id).list_by_request(db, request_id)
        return [Quotation.from_row(row) for row in rows]

    def list_by_supplier(self, db, *, tenant_id: str, supplier_id: str) -> List[Quotation]:
        rows = QuotationRepository(tenant_id=tenant_id).list_by_supplier(db, supplier_id)
        return [Quotation.from_row(row) for row in rows]

    def submit(
        self,
        db,
        *,
        tenant_id: str,
        invitation_id: str,
        supplier_id: str,
        supplier_name: str,
        data: QuotationInput | Mapping[str, Any],
    ) -> str:
        values = data if isinstance(data, Mapping) else {name: getattr(data, name) for name in QUOTATION_FIELDS}
        fields = normalize_quotation_fields(values)
        supplier_id = _clean_text("supplier_id", supplier_id)
        supplier_name = _clean_text("supplier_name", supplier_name)

        quotations = QuotationRepository(tenant_id=tenant_id)
        now = self._now()
        now_iso = to_iso(now) or ""

        with transaction(db):
            invitation = self.invitations.get(db, tenant_id=tenant_id, invitation_id=invitation_id, for_update=True)
            if invitation.status == "declined":
                raise InvalidStateTransitionError("invitation", invitation.status, "submit_quotation")
            quotation_id = quotations.create(
                db,
                invitation_id=invitation.id,
                request_id=invitation.request_id,
                supplier_id=supplier_id,
                supplier_name=supplier_name,
                delivery_date=to_iso(add_business_days(now, fields["delivery_days"])),
                submitted_at=now_iso,
                **fields,
            )
            self.invitations.link_quotation(
                db,
                tenant_id=tenant_id,
                invitation_id=invitation.id,
                quotation_id=quotation_id,
            )
            StatusEventRepository(tenant_id=tenant_id).add_event(
                db,
                entity="quotation",
                entity_id=quotation_id,
                from_status=None,
                to_status="submitted",
                reason="submitted",
                actor_id=supplier_id,
                occurred_at=now_iso,
            )

        logger.info(
            "rfq_quotation_submitted",
            extra={
                "tenant_id": tenant_id,
                "rfq_request_id": invitation.request_id,
                "quotation_id": quotation_id,
                "supplier_id": supplier_id,
            },
        )
        self.event_bus.publish(
            QuotationSubmitted(
                tenant_id=tenant_id,
                request_id=invitation.request_id,
                quotation_id=quotation_id,
                invitation_id=invitation.id,
                supplier_id=supplier_id,
                supplier_name=supplier_name,
                manager_id=invitation.manager_id,
            )
        )
        return quotation_id

    def update(self, db, *, tenant_id: str, quotation_id: str, fields: Mapping[str, Any]) -> Quotation:
        """Edit a submitted or cancelled quotation; the result is always ``submitted``.

        Updating a cancelled quotation resubmits it and re-links its invitation.
        """
        changes = normalize_quotation_fields(fields, partial=True)
        quotations = QuotationRepository(tenant_id=tenant_id)
        now = self._now()
        now_iso = to_iso(now)

        with transaction(db):
            row = quotations.get_by_id(db, quotation_id, for_update=True)
            if not row:
                raise not_found("quotation", quotation_id)
            quotation = Quotation.from_row(row)
            if quotation.status not in EDITABLE_QUOTATION_STATUSES:
                raise InvalidStateTransitionError("quotation", quotation.status, "update")

            updates: Dict[str, Any] = dict(changes)
            if "delivery_days" in changes and changes["delivery_days"] != quotation.delivery_days:
                updates["delivery_date"] = to_iso(add_business_days(now, changes["delivery_days"]))
            updates["status"] = "submitted"
            updates["updated_at"] = now_iso
            quotations.update_fields(db, quotation_id, updates)

            if quotation.status == "cancelled":
                self.invitations.link_quotation(
                    db,
                    tenant_id=tenant_id,
                    invitation_id=quotation.invitation_id,
                    quotation_id=quotation_id,
                )
                StatusEventRepository(tenant_id=tenant_id).add_event(
                    db,
                    entity="quotation",
                    entity_id=quotation_id,
                    from_status="cancelled",
                    to_status="submitted",
                    reason="resubmitted",
                    actor_id=quotation.supplier_id,
                    occurred_at=now_iso or "",
                )
            refreshed = quotations.get_by_id(db, quotation_id)

        logger.info(
            "rfq_quotation_updated",
            extra={
                "tenant_id": tenant_id,
                "rfq_request_id": quotation.request_id,
                "quotation_id": quotation_id,
                "fields": sorted(changes),
            },
        )
        return Quotation.from_row(refreshed or row)

    def cancel(self, db, *, tenant_id: str, quotation_id: str, invitation_id: str) -> Quotation:
        quotations = QuotationRepository(tenant_id=tenant_id)
        now_iso = to_iso(self._now()) or ""

        with transaction(db):
            row = quotations.get_by_id(db, quotation_id, for_update=True)
            if not row:
                raise not_found("quotation", quotation_id)
            quotation = Quotation.from_row(row)
            if quotation.invitation_id != invitation_id:
                raise ValidationError(
                    code="quotation_invitation_mismatch",
                    details="quotation does not belong to the given invitation",
                    payload={"quotation_id": quotation_id, "invitation_id": invitation_id},
                )
            if quotation.status != "submitted":
                raise InvalidStateTransitionError("quotation", quotation.status, "cancel")
            quotations.update_fields(db, quotation_id, {"status": "cancelled", "updated_at": now_iso})
            self.invitations.revert_to_viewed(db, tenant_id=tenant_id, invitation_id=invitation_id)
            StatusEventRepository(tenant_id=tenant_id).add_event(
                db,
                entity="quotation",
                entity_id=quotation_id,
                from_status="submitted",
                to_status="cancelled",
                reason="cancelled_by_supplier",
                actor_id=quotation.supplier_id,
                occurred_at=now_iso,
            )

        logger.info(
            "rfq_quotation_cancelled",
            extra={"tenant_id": tenant_id, "rfq_request_id": quotation.request_id, "quotation_id": quotation_id},
        )
        quotation.status = "cancelled"
        return quotation

    def compare(
        self,
        db,
        *,
        tenant_id: str,
        request_id: str,
        quality_scores: Mapping[str, float] | None = None,
        weights: RankingWeights | None = None,
    ) -> List[Quotation]:
        """Rank the request's active quotations, best first. Nothing is persisted."""
        active = [quotation for quotation in self.list_by_request(db, tenant_id=tenant_id, request_id=request_id) if quotation.is_active]
        return rank_quotations(active, quality_scores, weights or self.weights)
