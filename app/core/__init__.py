from app.core.event_bus import (
    DomainEvent,
    EventBus,
    InvitationsSent,
    QuotationSubmitted,
    WinnerReselected,
    WinnerSelected,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "InvitationsSent",
    "QuotationSubmitted",
    "WinnerSelected",
    "WinnerReselected",
]
