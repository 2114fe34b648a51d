from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping


REQUEST_STATUSES = ("draft", "pending", "in_progress", "quoting", "awarded", "completed", "rejected")
PRE_QUOTING_REQUEST_STATUSES = frozenset({"draft", "pending", "in_progress"})

INVITATION_STATUSES = ("pending", "viewed", "quoted", "declined")

QUOTATION_STATUSES = ("submitted", "selected", "rejected", "cancelled", "revoked")
EDITABLE_QUOTATION_STATUSES = frozenset({"submitted", "cancelled"})
INACTIVE_QUOTATION_STATUSES = frozenset({"cancelled", "revoked"})

CURRENCIES = ("USD", "EUR")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | date | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return value.isoformat()


def normalize_date_value(value: Any) -> str | None:
    """Return ``value`` as an ISO date or UTC timestamp string.

    Blank input yields ``None``. Anything that is not a date, a datetime or an
    ISO-8601 string raises ``ValueError``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO-8601 date, got {type(value).__name__}")
    raw = value.strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw).isoformat()
    except ValueError:
        pass
    parsed = parse_timestamp(raw)
    if parsed is None:
        raise ValueError(f"not an ISO-8601 date: {raw!r}")
    return to_iso(parsed)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ProcurementRequest:
    id: str
    status: str
    tenant_id: str = ""
    code: str | None = None
    title: str | None = None
    description: str | None = None
    requester_id: str | None = None
    requester_email: str | None = None
    due_date: str | None = None
    quotation_started_at: str | None = None
    winner_id: str | None = None
    winner_quotation_id: str | None = None
    winner_amount: float | None = None
    winner_delivery_days: int | None = None
    previous_winner_id: str | None = None
    adjudicated_at: str | None = None
    revoked_at: str | None = None
    revocation_reason: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ProcurementRequest":
        winner_amount = row.get("winner_amount")
        winner_days = row.get("winner_delivery_days")
        return cls(
            id=str(row["id"]),
            status=str(row["status"]),
            tenant_id=str(row.get("tenant_id") or ""),
            code=row.get("code"),
            title=row.get("title"),
            description=row.get("description"),
            requester_id=row.get("requester_id"),
            requester_email=row.get("requester_email"),
            due_date=row.get("due_date"),
            quotation_started_at=row.get("quotation_started_at"),
            winner_id=row.get("winner_id"),
            winner_quotation_id=row.get("winner_quotation_id"),
            winner_amount=float(winner_amount) if winner_amount is not None else None,
            winner_delivery_days=int(winner_days) if winner_days is not None else None,
            previous_winner_id=row.get("previous_winner_id"),
            adjudicated_at=row.get("adjudicated_at"),
            revoked_at=row.get("revoked_at"),
            revocation_reason=row.get("revocation_reason"),
        )

    def meta(self) -> Dict[str, Any]:
        """Descriptive fields handed to the email gateway."""
        return {
            "code": self.code or "N/A",
            "title": self.title or "Untitled",
            "description": self.description or "",
        }


@dataclass
class Invitation:
    id: str
    request_id: str
    supplier_id: str
    manager_id: str
    status: str
    due_date: str | None = None
    message: str | None = None
    delivery_address: str | None = None
    quotation_id: str | None = None
    created_at: str | None = None
    viewed_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Invitation":
        return cls(
            id=str(row["id"]),
            request_id=str(row["request_id"]),
            supplier_id=str(row["supplier_id"]),
            manager_id=str(row["manager_id"]),
            status=str(row["status"]),
            due_date=row.get("due_date"),
            message=row.get("message"),
            delivery_address=row.get("delivery_address"),
            quotation_id=row.get("quotation_id"),
            created_at=row.get("created_at"),
            viewed_at=row.get("viewed_at"),
        )


@dataclass
class Quotation:
    id: str
    request_id: str
    supplier_id: str
    total_amount: float
    delivery_days: int
    invitation_id: str = ""
    supplier_name: str = ""
    currency: str = "USD"
    delivery_date: str | None = None
    payment_terms: str = ""
    valid_until: str | None = None
    notes: str = ""
    attachments: List[str] = field(default_factory=list)
    status: str = "submitted"
    is_winner: bool = False
    is_reselection: bool = False
    submitted_at: str | None = None
    selected_at: str | None = None
    ranking_score: float | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_QUOTATION_STATUSES

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Quotation":
        attachments = row.get("attachments") or "[]"
        if isinstance(attachments, str):
            try:
                attachments = json.loads(attachments)
            except json.JSONDecodeError:
                attachments = []
        return cls(
            id=str(row["id"]),
            invitation_id=str(row["invitation_id"]),
            request_id=str(row["request_id"]),
            supplier_id=str(row["supplier_id"]),
            supplier_name=str(row.get("supplier_name") or ""),
            total_amount=float(row["total_amount"]),
            currency=str(row.get("currency") or "USD"),
            delivery_days=int(row["delivery_days"]),
            delivery_date=row.get("delivery_date"),
            payment_terms=str(row.get("payment_terms") or ""),
            valid_until=row.get("valid_until"),
            notes=str(row.get("notes") or ""),
            attachments=[str(item) for item in attachments if item],
            status=str(row["status"]),
            is_winner=bool(row.get("is_winner")),
            is_reselection=bool(row.get("is_reselection")),
            submitted_at=row.get("submitted_at"),
            selected_at=row.get("selected_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "invitation_id": self.invitation_id,
            "request_id": self.request_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "delivery_days": self.delivery_days,
            "delivery_date": self.delivery_date,
            "payment_terms": self.payment_terms,
            "valid_until": self.valid_until,
            "notes": self.notes,
            "attachments": list(self.attachments),
            "status": self.status,
            "is_winner": self.is_winner,
            "is_reselection": self.is_reselection,
            "submitted_at": self.submitted_at,
            "selected_at": self.selected_at,
            "ranking_score": self.ranking_score,
        }


@dataclass(frozen=True)
class QuotationInput:
    total_amount: float
    currency: str
    delivery_days: int
    payment_terms: str
    valid_until: datetime | date | str
    notes: str | None = None
    attachments: List[str] | None = None
