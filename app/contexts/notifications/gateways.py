from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from app.contexts.rfq.domain.models import to_iso, utc_now
from app.contexts.rfq.infrastructure.repositories import NotificationRepository
from app.db import connect_database
from app.errors import IntegrationError


NOTIFICATION_TYPES = (
    "quotation_invitation",
    "quotation_received",
    "quotation_not_selected",
    "quotation_winner",
    "supplier_selected",
)

RELATED_TYPES = ("request", "quotation", "invitation")

logger = logging.getLogger("app")


class NotificationGateway(ABC):
    @abstractmethod
    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        related_id: str | None = None,
        related_type: str | None = None,
        *,
        tenant_id: str,
    ) -> str | None:
        raise NotImplementedError


class DatabaseNotificationGateway(NotificationGateway):
    """Stores in-app notifications through a dedicated connection.

    Each call opens and closes its own connection so writes never join the
    caller's transaction.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        related_id: str | None = None,
        related_type: str | None = None,
        *,
        tenant_id: str,
    ) -> str | None:
        if notification_type not in NOTIFICATION_TYPES:
            raise ValueError(f"unknown notification type: {notification_type}")
        if related_type is not None and related_type not in RELATED_TYPES:
            raise ValueError(f"unknown related type: {related_type}")
        db = connect_database(self.db_path)
        try:
            notification_id = NotificationRepository(tenant_id=tenant_id).create(
                db,
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                message=message,
                related_id=related_id,
                related_type=related_type,
                created_at=to_iso(utc_now()) or "",
            )
            db.commit()
            return notification_id
        finally:
            db.close()


class EmailGateway(ABC):
    @abstractmethod
    def send_invitation_emails(
        self,
        request_id: str,
        request_meta: Mapping[str, Any],
        supplier_ids: List[str],
        requester_email: str,
        due_date: str | None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_winner_emails(
        self,
        request_id: str,
        request_meta: Mapping[str, Any],
        winner_supplier_id: str,
        requester_email: str,
        amount: float,
        currency: str,
    ) -> None:
        raise NotImplementedError


class LoggingEmailGateway(EmailGateway):
    def send_invitation_emails(self, request_id, request_meta, supplier_ids, requester_email, due_date) -> None:
        logger.info(
            "email_invitations_logged",
            extra={
                "rfq_request_id": request_id,
                "request_code": request_meta.get("code"),
                "supplier_count": len(supplier_ids),
                "requester_email": requester_email,
                "due_date": due_date,
            },
        )

    def send_winner_emails(self, request_id, request_meta, winner_supplier_id, requester_email, amount, currency) -> None:
        logger.info(
            "email_winner_logged",
            extra={
                "rfq_request_id": request_id,
                "request_code": request_meta.get("code"),
                "winner_supplier_id": winner_supplier_id,
                "requester_email": requester_email,
                "amount": amount,
                "currency": currency,
            },
        )


class HttpEmailGateway(EmailGateway):
    """Posts email jobs as JSON to a mail webhook, one call per message type."""

    def __init__(self, url: str, *, api_key: str | None = None, timeout_seconds: int = 10) -> None:
        if not url:
            raise IntegrationError(code="email_webhook_missing", details="EMAIL_WEBHOOK_URL is not configured.")
        self.url = url
        self.api_key = api_key
        self.timeout_seconds = int(timeout_seconds)

    def send_invitation_emails(self, request_id, request_meta, supplier_ids, requester_email, due_date) -> None:
        base = self._base_payload(request_id, request_meta)
        self._post({**base, "type": "invitation", "supplierIds": list(supplier_ids), "dueDate": due_date})
        self._post(
            {
                **base,
                "type": "quotation_started",
                "requesterEmail": requester_email,
                "supplierCount": len(supplier_ids),
            }
        )

    def send_winner_emails(self, request_id, request_meta, winner_supplier_id, requester_email, amount, currency) -> None:
        base = self._base_payload(request_id, request_meta)
        common = {"supplierId": winner_supplier_id, "amount": amount, "currency": currency}
        self._post({**base, **common, "type": "winner"})
        self._post({**base, **common, "type": "supplier_selected", "requesterEmail": requester_email})

    @staticmethod
    def _base_payload(request_id: str, request_meta: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "requestId": request_id,
            "requestCode": request_meta.get("code"),
            "requestTitle": request_meta.get("title"),
            "requestDescription": request_meta.get("description"),
        }

    def _post(self, payload: Dict[str, Any]) -> None:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        data = json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("utf-8")
        request = urllib.request.Request(self.url, data=data, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
                response.read()
        except urllib.error.HTTPError as exc:  # noqa: PERF203
            error_body = exc.read().decode("utf-8") if exc.fp else ""
            raise IntegrationError(code="email_http_error", details=f"email HTTP {exc.code}: {error_body[:200]}") from exc
        except urllib.error.URLError as exc:
            raise IntegrationError(code="email_unreachable", details=f"email connection error: {exc.reason}") from exc


def build_email_gateway(config: Mapping[str, Any]) -> EmailGateway:
    mode = str(config.get("EMAIL_MODE") or "log").strip().lower()
    if mode == "http":
        return HttpEmailGateway(
            str(config.get("EMAIL_WEBHOOK_URL") or ""),
            api_key=config.get("EMAIL_API_KEY"),
            timeout_seconds=int(config.get("EMAIL_TIMEOUT_SECONDS") or 10),
        )
    if mode != "log":
        raise IntegrationError(code="email_mode_invalid", details=f"invalid EMAIL_MODE: {mode}")
    return LoggingEmailGateway()
