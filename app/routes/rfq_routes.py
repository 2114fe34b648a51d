from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from app.contexts.rfq.application.engine import RfqEngine
from app.contexts.rfq.domain.models import ProcurementRequest, REQUEST_STATUSES, normalize_date_value
from app.contexts.rfq.infrastructure.repositories import (
    NotificationRepository,
    ProcurementRequestRepository,
    StatusEventRepository,
)
from app.db import get_db
from app.errors import ValidationError, not_found
from app.tenant import scoped_tenant_id


rfq_bp = Blueprint("rfq", __name__, url_prefix="/api/rfq")


def _engine() -> RfqEngine:
    return current_app.extensions["rfq_engine"]


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(code="json_object_required", details="request body must be a JSON object")
    return payload


def _required(payload: Dict[str, Any], key: str) -> str:
    value = str(payload.get(key) or "").strip()
    if not value:
        raise ValidationError(code=f"{key}_required", details=f"{key} is required", payload={"field": key})
    return value


def _optional_date(payload: Dict[str, Any], key: str) -> str | None:
    try:
        return normalize_date_value(payload.get(key))
    except ValueError as exc:
        raise ValidationError(code=f"{key}_invalid", details=str(exc), payload={"field": key}) from exc


def _load_request(db, tenant_id: str, request_id: str) -> ProcurementRequest:
    row = ProcurementRequestRepository(tenant_id=tenant_id).get_by_id(db, request_id)
    if not row:
        raise not_found("request", request_id)
    return ProcurementRequest.from_row(row)


@rfq_bp.route("/requests", methods=["POST"])
def register_request():
    """Mirror a procurement request owned by the outer application."""
    payload = _json_body()
    status = str(payload.get("status") or "pending").strip()
    if status not in REQUEST_STATUSES:
        raise ValidationError(code="request_status_invalid", details=f"unknown request status: {status}")
    tenant_id = scoped_tenant_id()
    db = get_db()
    request_id = ProcurementRequestRepository(tenant_id=tenant_id).create(
        db,
        request_id=str(payload.get("id") or "").strip() or None,
        status=status,
        code=payload.get("code"),
        title=payload.get("title"),
        description=payload.get("description"),
        requester_id=payload.get("requester_id"),
        requester_email=payload.get("requester_email"),
        due_date=_optional_date(payload, "due_date"),
    )
    db.commit()
    return jsonify({"id": request_id, "status": status}), 201


@rfq_bp.route("/requests/<string:request_id>", methods=["GET"])
def request_detail(request_id: str):
    tenant_id = scoped_tenant_id()
    db = get_db()
    procurement_request = _load_request(db, tenant_id, request_id)
    engine = _engine()
    invitations = engine.invitations.list_by_request(db, tenant_id=tenant_id, request_id=request_id)
    quotations = engine.quotations.list_by_request(db, tenant_id=tenant_id, request_id=request_id)
    return jsonify(
        {
            "request": asdict(procurement_request),
            "invitations": [asdict(item) for item in invitations],
            "quotations": [item.to_dict() for item in quotations],
        }
    )


@rfq_bp.route("/requests/<string:request_id>/status-events", methods=["GET"])
def request_status_events(request_id: str):
    tenant_id = scoped_tenant_id()
    db = get_db()
    _load_request(db, tenant_id, request_id)
    events = StatusEventRepository(tenant_id=tenant_id).list_for_entity(db, entity="request", entity_id=request_id)
    return jsonify({"items": events})


@rfq_bp.route("/requests/<string:request_id>/invitations", methods=["GET", "POST"])
def request_invitations(request_id: str):
    tenant_id = scoped_tenant_id()
    db = get_db()
    engine = _engine()
    if request.method == "GET":
        items = engine.invitations.list_by_request(db, tenant_id=tenant_id, request_id=request_id)
        return jsonify({"items": [asdict(item) for item in items]})

    payload = _json_body()
    supplier_ids = payload.get("supplier_ids")
    if not isinstance(supplier_ids, list):
        raise ValidationError(code="suppliers_required", details="supplier_ids must be a list")
    invitation_ids = engine.invitations.invite(
        db,
        tenant_id=tenant_id,
        request_id=request_id,
        supplier_ids=supplier_ids,
        manager_id=_required(payload, "manager_id"),
        due_date=payload.get("due_date"),
        message=payload.get("message"),
        delivery_address=payload.get("delivery_address"),
    )
    return jsonify({"invitation_ids": invitation_ids}), 201


@rfq_bp.route("/suppliers/<string:supplier_id>/invitations", methods=["GET"])
def supplier_invitations(supplier_id: str):
    items = _engine().invitations.list_by_supplier(get_db(), tenant_id=scoped_tenant_id(), supplier_id=supplier_id)
    return jsonify({"items": [asdict(item) for item in items]})


@rfq_bp.route("/invitations/<string:invitation_id>/view", methods=["POST"])
def view_invitation(invitation_id: str):
    invitation = _engine().invitations.mark_viewed(get_db(), tenant_id=scoped_tenant_id(), invitation_id=invitation_id)
    return jsonify(asdict(invitation))


@rfq_bp.route("/invitations/<string:invitation_id>/decline", methods=["POST"])
def decline_invitation(invitation_id: str):
    invitation = _engine().invitations.decline(get_db(), tenant_id=scoped_tenant_id(), invitation_id=invitation_id)
    return jsonify(asdict(invitation))


@rfq_bp.route("/invitations/<string:invitation_id>/quotations", methods=["POST"])
def submit_quotation(invitation_id: str):
    payload = _json_body()
    tenant_id = scoped_tenant_id()
    db = get_db()
    engine = _engine()
    data = {key: value for key, value in payload.items() if key not in {"supplier_id", "supplier_name"}}
    quotation_id = engine.quotations.submit(
        db,
        tenant_id=tenant_id,
        invitation_id=invitation_id,
        supplier_id=_required(payload, "supplier_id"),
        supplier_name=payload.get("supplier_name"),
        data=data,
    )
    quotation = engine.quotations.get(db, tenant_id=tenant_id, quotation_id=quotation_id)
    return jsonify(quotation.to_dict()), 201


@rfq_bp.route("/quotations/<string:quotation_id>", methods=["GET", "PATCH"])
def quotation_detail(quotation_id: str):
    tenant_id = scoped_tenant_id()
    db = get_db()
    engine = _engine()
    if request.method == "GET":
        return jsonify(engine.quotations.get(db, tenant_id=tenant_id, quotation_id=quotation_id).to_dict())
    quotation = engine.quotations.update(db, tenant_id=tenant_id, quotation_id=quotation_id, fields=_json_body())
    return jsonify(quotation.to_dict())


@rfq_bp.route("/quotations/<string:quotation_id>/cancel", methods=["POST"])
def cancel_quotation(quotation_id: str):
    payload = _json_body()
    quotation = _engine().quotations.cancel(
        get_db(),
        tenant_id=scoped_tenant_id(),
        quotation_id=quotation_id,
        invitation_id=_required(payload, "invitation_id"),
    )
    return jsonify(quotation.to_dict())


@rfq_bp.route("/requests/<string:request_id>/quotations", methods=["GET"])
def request_quotations(request_id: str):
    items = _engine().quotations.list_by_request(get_db(), tenant_id=scoped_tenant_id(), request_id=request_id)
    return jsonify({"items": [item.to_dict() for item in items]})


@rfq_bp.route("/suppliers/<string:supplier_id>/quotations", methods=["GET"])
def supplier_quotations(supplier_id: str):
    items = _engine().quotations.list_by_supplier(get_db(), tenant_id=scoped_tenant_id(), supplier_id=supplier_id)
    return jsonify({"items": [item.to_dict() for item in items]})


@rfq_bp.route("/requests/<string:request_id>/compare", methods=["POST"])
def compare_quotations(request_id: str):
    payload = _json_body()
    quality_scores = payload.get("quality_scores") or {}
    if not isinstance(quality_scores, dict):
        raise ValidationError(code="quality_scores_invalid", details="quality_scores must be an object")
    ranked = _engine().quotations.compare(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
        quality_scores=quality_scores,
    )
    return jsonify({"items": [item.to_dict() for item in ranked]})


@rfq_bp.route("/requests/<string:request_id>/winner", methods=["POST"])
def select_winner(request_id: str):
    payload = _json_body()
    winner = _engine().winner_selection.select_winner(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
        quotation_id=_required(payload, "quotation_id"),
        requester_user_id=str(payload.get("requester_user_id") or "").strip(),
    )
    return jsonify(winner.to_dict())


@rfq_bp.route("/requests/<string:request_id>/winner/revoke", methods=["POST"])
def revoke_winner(request_id: str):
    payload = _json_body()
    revoked = _engine().reselection.revoke_winner(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
        manager_id=_required(payload, "manager_id"),
        reason=payload.get("reason"),
    )
    return jsonify(revoked.to_dict())


@rfq_bp.route("/requests/<string:request_id>/reselection-candidates", methods=["GET"])
def reselection_candidates(request_id: str):
    items = _engine().reselection.get_eligible_for_reselection(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
    )
    return jsonify({"items": [item.to_dict() for item in items]})


@rfq_bp.route("/requests/<string:request_id>/reselect", methods=["POST"])
def reselect_winner(request_id: str):
    payload = _json_body()
    winner = _engine().reselection.reselect(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
        quotation_id=_required(payload, "quotation_id"),
        manager_id=_required(payload, "manager_id"),
    )
    return jsonify(winner.to_dict())


@rfq_bp.route("/requests/<string:request_id>/suppliers/<string:supplier_id>/comments", methods=["GET", "POST"])
def comments(request_id: str, supplier_id: str):
    tenant_id = scoped_tenant_id()
    db = get_db()
    engine = _engine()
    if request.method == "GET":
        items = engine.comments.list_comments(db, tenant_id=tenant_id, request_id=request_id, supplier_id=supplier_id)
        return jsonify({"items": items})

    payload = _json_body()
    comment_id = engine.comments.add_comment(
        db,
        tenant_id=tenant_id,
        request_id=request_id,
        supplier_id=supplier_id,
        author_id=_required(payload, "author_id"),
        author_role=_required(payload, "author_role"),
        body=payload.get("body"),
    )
    return jsonify({"id": comment_id}), 201


@rfq_bp.route("/requests/<string:request_id>/suppliers/<string:supplier_id>/comments/read", methods=["POST"])
def comments_mark_read(request_id: str, supplier_id: str):
    payload = _json_body()
    updated = _engine().comments.mark_read(
        get_db(),
        tenant_id=scoped_tenant_id(),
        request_id=request_id,
        supplier_id=supplier_id,
        author_role=_required(payload, "author_role"),
    )
    return jsonify({"updated": updated})


@rfq_bp.route("/users/<string:user_id>/notifications", methods=["GET"])
def user_notifications(user_id: str):
    repo = NotificationRepository(tenant_id=scoped_tenant_id())
    db = get_db()
    unread_only = str(request.args.get("unread") or "").strip().lower() in {"1", "true", "yes"}
    try:
        limit = max(1, min(200, int(request.args.get("limit") or 50)))
    except ValueError as exc:
        raise ValidationError(code="limit_invalid", details="limit must be an integer") from exc
    return jsonify(
        {
            "items": repo.list_for_user(db, user_id, limit=limit, unread_only=unread_only),
            "unread": repo.count_unread(db, user_id),
        }
    )


@rfq_bp.route("/users/<string:user_id>/notifications/<string:notification_id>/read", methods=["POST"])
def notification_mark_read(user_id: str, notification_id: str):
    db = get_db()
    if not NotificationRepository(tenant_id=scoped_tenant_id()).mark_read(db, notification_id, user_id=user_id):
        raise not_found("notification", notification_id)
    db.commit()
    return jsonify({"id": notification_id, "read": True})


@rfq_bp.route("/users/<string:user_id>/notifications/read-all", methods=["POST"])
def notifications_mark_all_read(user_id: str):
    db = get_db()
    updated = NotificationRepository(tenant_id=scoped_tenant_id()).mark_all_read(db, user_id)
    db.commit()
    return jsonify({"updated": updated})
