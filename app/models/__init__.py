"""Models package for database models."""

from app.models.user import User
from app.models.business import Business
from app.models.subscription import SubscriptionPlan, BusinessSubscription
from app.models.payment import Payment
from app.models.notification import Notification

__all__ = [
    "User",
    "Business",
    "SubscriptionPlan",
    "BusinessSubscription",
    "Payment",
    "Notification",
]
