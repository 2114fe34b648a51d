from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from app.contexts.notifications.dispatcher import SideEffectDispatcher
from app.contexts.notifications.gateways import (
    DatabaseNotificationGateway,
    EmailGateway,
    NotificationGateway,
    build_email_gateway,
)
from app.contexts.notifications.handlers import RfqSideEffectHandlers
from app.contexts.rfq.application.comment_service import CommentService
from app.contexts.rfq.application.invitation_service import InvitationService
from app.contexts.rfq.application.locks import RequestLockRegistry
from app.contexts.rfq.application.quotation_service import QuotationService
from app.contexts.rfq.application.reselection import ReselectionCoordinator
from app.contexts.rfq.application.winner_selection import WinnerSelectionCoordinator
from app.contexts.rfq.domain.models import utc_now
from app.contexts.rfq.domain.ranking import RankingWeights
from app.core import EventBus


@dataclass
class RfqEngine:
    event_bus: EventBus
    dispatcher: SideEffectDispatcher
    invitations: InvitationService
    quotations: QuotationService
    winner_selection: WinnerSelectionCoordinator
    reselection: ReselectionCoordinator
    comments: CommentService

    def shutdown(self, timeout: float | None = 5.0) -> None:
        self.dispatcher.stop(timeout)


def build_rfq_engine(
    config: Mapping[str, Any],
    *,
    notification_gateway: NotificationGateway | None = None,
    email_gateway: EmailGateway | None = None,
    now_fn: Callable[[], datetime] = utc_now,
) -> RfqEngine:
    """Wire stores, coordinators and side-effect handlers from app config."""
    event_bus = EventBus()
    dispatcher = SideEffectDispatcher(
        mode=str(config.get("SIDE_EFFECTS_MODE") or "thread"),
        max_attempts=int(config.get("SIDE_EFFECTS_MAX_ATTEMPTS") or 3),
        retry_backoff_ms=int(config.get("SIDE_EFFECTS_RETRY_BACKOFF_MS") or 0),
        queue_size=int(config.get("SIDE_EFFECTS_QUEUE_SIZE") or 1000),
    )
    RfqSideEffectHandlers(
        dispatcher,
        notification_gateway or DatabaseNotificationGateway(str(config["DB_PATH"])),
        email_gateway or build_email_gateway(config),
    ).register(event_bus)

    locks = RequestLockRegistry()
    invitations = InvitationService(event_bus, now_fn)
    return RfqEngine(
        event_bus=event_bus,
        dispatcher=dispatcher,
        invitations=invitations,
        quotations=QuotationService(
            invitations,
            event_bus,
            now_fn,
            weights=RankingWeights.parse(config.get("RANKING_WEIGHTS")),
        ),
        winner_selection=WinnerSelectionCoordinator(event_bus, locks, now_fn),
        reselection=ReselectionCoordinator(event_bus, locks, now_fn),
        comments=CommentService(now_fn),
    )
