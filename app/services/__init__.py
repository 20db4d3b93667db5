"""Services package."""

from app.services.payment_service import PaymentService
from app.services.paytabs_service import PayTabsService, get_paytabs_service
from app.services.subscription_service import SubscriptionService
from app.services.notification_service import NotificationService
from app.services.email_service import EmailService, get_email_service
from app.services.payment_notifier import PaymentNotifier
from app.services.reconciliation_service import ReconciliationService
from app.services.checkout_service import CheckoutService

__all__ = [
    "PaymentService",
    "PayTabsService",
    "get_paytabs_service",
    "SubscriptionService",
    "NotificationService",
    "EmailService",
    "get_email_service",
    "PaymentNotifier",
    "ReconciliationService",
    "CheckoutService",
]
