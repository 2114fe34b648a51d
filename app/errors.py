from __future__ import annotations

from typing import Any, Dict

from app.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "The operation could not be completed.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404
    default_critical = False


class InvalidStateTransitionError(UserActionError):
    default_code = "invalid_state_transition"
    default_message_key = "invalid_state_transition"
    default_http_status = 409
    default_critical = False

    def __init__(self, entity: str, current_status: str | None, action: str, **kwargs) -> None:
        payload = dict(kwargs.pop("payload", None) or {})
        payload.update({"entity": entity, "current_status": current_status, "action": action})
        details = kwargs.pop("details", None) or f"{entity} in status {current_status!r} does not allow {action}"
        super().__init__(details=details, payload=payload, **kwargs)
        self.entity = entity
        self.current_status = current_status
        self.action = action


class AlreadyAwardedError(UserActionError):
    """Winner selection was attempted on a request that already has a winner."""

    default_code = "already_awarded"
    default_message_key = "already_awarded"
    default_http_status = 409
    default_critical = False


class PolicyViolationError(UserActionError):
    default_code = "policy_violation"
    default_message_key = "policy_violation"
    default_http_status = 422
    default_critical = False


class IntegrationError(AppError):
    default_code = "integration_error"
    default_message_key = "integration_unavailable"
    default_http_status = 502
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


def not_found(entity: str, entity_id: str | None) -> NotFoundError:
    return NotFoundError(
        code=f"{entity}_not_found",
        message_key=f"{entity}_not_found",
        details=f"{entity} {entity_id!r} not found",
        payload={f"{entity}_id": entity_id},
    )
