from .comment_repository import CommentRepository
from .invitation_repository import InvitationRepository
from .notification_repository import NotificationRepository
from .quotation_repository import QuotationRepository
from .request_repository import ProcurementRequestRepository
from .status_event_repository import StatusEventRepository

__all__ = [
    "CommentRepository",
    "InvitationRepository",
    "NotificationRepository",
    "ProcurementRequestRepository",
    "QuotationRepository",
    "StatusEventRepository",
]
