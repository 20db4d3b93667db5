"""FSM package for payment and subscription state management."""

from app.fsm.states import PaymentStatus, SubscriptionStatus, NotificationType
from app.fsm.machine import RedirectDestination, can_transition, destination_for, is_terminal

__all__ = [
    "PaymentStatus",
    "SubscriptionStatus",
    "NotificationType",
    "RedirectDestination",
    "can_transition",
    "destination_for",
    "is_terminal",
]
