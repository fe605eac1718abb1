from creatordeals.models.user import PendingRegistration, User
from creatordeals.models.offer import Offer, OfferCounter
from creatordeals.models.chat import ChatMessage, ChatRoom
from creatordeals.models.deal import Deal, DealTransaction, Milestone
from creatordeals.models.notification import Notification

__all__ = [
    "User",
    "PendingRegistration",
    "Offer",
    "OfferCounter",
    "ChatRoom",
    "ChatMessage",
    "Deal",
    "Milestone",
    "DealTransaction",
    "Notification",
]
