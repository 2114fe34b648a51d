from __future__ import annotations

from functools import partial

from app.contexts.notifications.dispatcher import SideEffectDispatcher
from app.contexts.notifications.gateways import EmailGateway, NotificationGateway
from app.core import EventBus, InvitationsSent, QuotationSubmitted, WinnerReselected, WinnerSelected
from app.ui_strings import notification_text


class RfqSideEffectHandlers:
    """Turns committed RFQ events into notification and email tasks."""

    def __init__(
        self,
        dispatcher: SideEffectDispatcher,
        notifications: NotificationGateway,
        email: EmailGateway,
    ) -> None:
        self.dispatcher = dispatcher
        self.notifications = notifications
        self.email = email

    def register(self, bus: EventBus) -> None:
        bus.subscribe(InvitationsSent, self.on_invitations_sent)
        bus.subscribe(QuotationSubmitted, self.on_quotation_submitted)
        bus.subscribe(WinnerSelected, self.on_winner_selected)
        bus.subscribe(WinnerReselected, self.on_winner_reselected)

    def _notify(
        self,
        *,
        tenant_id: str,
        user_id: str,
        notification_type: str,
        request_id: str,
        variant: str = "message",
        **values: object,
    ) -> None:
        title, message = notification_text(notification_type, variant, request_id=request_id, **values)
        self.dispatcher.submit(
            "notification",
            partial(
                self.notifications.create,
                user_id,
                notification_type,
                title,
                message,
                request_id,
                "request",
                tenant_id=tenant_id,
            ),
            notification_type=notification_type,
            user_id=user_id,
            rfq_request_id=request_id,
        )

    def on_invitations_sent(self, event: InvitationsSent) -> None:
        for supplier_id in event.supplier_ids:
            self._notify(
                tenant_id=event.tenant_id,
                user_id=supplier_id,
                notification_type="quotation_invitation",
                request_id=event.request_id,
            )
        self.dispatcher.submit(
            "email",
            partial(
                self.email.send_invitation_emails,
                event.request_id,
                dict(event.request_meta),
                list(event.supplier_ids),
                event.requester_email,
                event.due_date,
            ),
            email_type="invitation",
            rfq_request_id=event.request_id,
        )

    def on_quotation_submitted(self, event: QuotationSubmitted) -> None:
        self._notify(
            tenant_id=event.tenant_id,
            user_id=event.manager_id,
            notification_type="quotation_received",
            request_id=event.request_id,
            supplier_name=event.supplier_name,
        )

    def on_winner_selected(self, event: WinnerSelected) -> None:
        for supplier_id in event.rejected_supplier_ids:
            self._notify(
                tenant_id=event.tenant_id,
                user_id=supplier_id,
                notification_type="quotation_not_selected",
                request_id=event.request_id,
            )
        self._notify(
            tenant_id=event.tenant_id,
            user_id=event.winner_supplier_id,
            notification_type="quotation_winner",
            request_id=event.request_id,
        )
        if event.requester_user_id:
            self._notify(
                tenant_id=event.tenant_id,
                user_id=event.requester_user_id,
                notification_type="supplier_selected",
                request_id=event.request_id,
                supplier_name=event.winner_supplier_name,
            )
        self.dispatcher.submit(
            "email",
            partial(
                self.email.send_winner_emails,
                event.request_id,
                dict(event.request_meta),
                event.winner_supplier_id,
                event.requester_email,
                event.amount,
                event.currency,
            ),
            email_type="winner",
            rfq_request_id=event.request_id,
        )

    def on_winner_reselected(self, event: WinnerReselected) -> None:
        self._notify(
            tenant_id=event.tenant_id,
            user_id=event.winner_supplier_id,
            notification_type="quotation_winner",
            request_id=event.request_id,
            variant="reselection_message",
        )
