from __future__ import annotations

from typing import Dict, Tuple


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "RFQ Engine",
    "request": "Procurement request",
    "invitation": "Quotation invitation",
    "quotation": "Quotation",
    "supplier": "Supplier",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "action_invalid": "This action is not available right now.",
        "validation_error": "Some of the submitted data is invalid.",
        "not_found": "The requested record was not found.",
        "request_not_found": "Procurement request not found.",
        "invitation_not_found": "Invitation not found.",
        "quotation_not_found": "Quotation not found.",
        "notification_not_found": "Notification not found.",
        "invalid_state_transition": "This action is not allowed in the current status.",
        "already_awarded": "A winner has already been selected for this request.",
        "policy_violation": "The penalized supplier cannot be awarded this request again.",
        "integration_unavailable": "An external service is temporarily unavailable.",
        "unexpected_error": "The operation could not be completed. Please try again shortly.",
    },
    "notification": {
        "quotation_invitation.title": "New quotation invitation",
        "quotation_invitation.message": "You have been invited to quote for request #{request_ref}.",
        "quotation_received.title": "Quotation received",
        "quotation_received.message": "{supplier_name} submitted a quotation for request #{request_ref}.",
        "quotation_not_selected.title": "Quotation result",
        "quotation_not_selected.message": (
            "Thank you for taking part in request #{request_ref}. Another offer was selected this time."
        ),
        "quotation_winner.title": "Congratulations!",
        "quotation_winner.message": "Your offer was selected for request #{request_ref}.",
        "quotation_winner.reselection_message": (
            "Your offer was selected for request #{request_ref} after the previous winner was revoked."
        ),
        "supplier_selected.title": "Supplier selected",
        "supplier_selected.message": "{supplier_name} was selected for your request #{request_ref}.",
    },
}


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def request_ref(request_id: str | None) -> str:
    return str(request_id or "")[-6:].upper() or "N/A"


def notification_text(notification_type: str, variant: str = "message", **values: object) -> Tuple[str, str]:
    title = get_message("notification", f"{notification_type}.title")
    template = get_message("notification", f"{notification_type}.{variant}")
    values.setdefault("request_ref", request_ref(str(values.get("request_id") or "")))
    try:
        message = template.format(**values)
    except (KeyError, IndexError):
        message = template
    return title, message
