"""
State definitions for payments, subscriptions and notifications.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    """
    Payment lifecycle.
    PENDING is the only non-terminal state.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SubscriptionStatus(str, Enum):
    """Status of a business subscription."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PlanStatus(str, Enum):
    """Whether a plan can be purchased."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class BillingInterval(str, Enum):
    """Billing period unit of a subscription plan."""

    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"
    CUSTOM = "CUSTOM"


class PaymentMethod(str, Enum):
    """Payment method tag stored on payments and subscriptions."""

    PAYTABS = "PAYTABS"


class NotificationType(str, Enum):
    """In-app notification kinds emitted by the payment pipeline."""

    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_EXPIRING = "SUBSCRIPTION_EXPIRING"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"

    @property
    def default_title(self) -> str:
        titles = {
            NotificationType.PAYMENT_SUCCESS: "Payment Successful",
            NotificationType.PAYMENT_FAILED: "Payment Failed",
            NotificationType.SUBSCRIPTION_ACTIVATED: "Subscription Activated",
            NotificationType.SUBSCRIPTION_EXPIRING: "Subscription Expiring Soon",
            NotificationType.SUBSCRIPTION_EXPIRED: "Subscription Expired",
        }
        return titles.get(self, self.value)


class UserRole(str, Enum):
    """Roles forwarded by the authentication layer."""

    USER = "USER"
    BUSINESS_OWNER = "BUSINESS_OWNER"
    ADMIN = "ADMIN"
