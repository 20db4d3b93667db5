"""
Payment Notifier - notifications and emails fired by payment and subscription transitions.

Runs after the primary transition has been committed. Every side effect is
isolated: a failure is logged and rolled back on its own and never reaches
the caller.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.fsm.states import NotificationType
from app.models.business import Business
from app.models.payment import Payment
from app.models.subscription import BusinessSubscription, SubscriptionPlan
from app.models.user import User
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService
from app.services.subscription_service import ActivationResult

logger = logging.getLogger(__name__)


class PaymentNotifier:
    """Decides which notification and email each transition triggers."""

    def __init__(self, db: AsyncSession, email: EmailService):
        self.db = db
        self.email = email
        self.notifications = NotificationService(db)

    async def payment_completed(
        self,
        payment: Payment,
        activation: Optional[ActivationResult] = None,
    ) -> None:
        """PAYMENT_SUCCESS (+ SUBSCRIPTION_ACTIVATED) notifications and emails."""
        # Capture plain values up front; a failed side effect rolls the session back
        payment_id = payment.id
        user_id = payment.user_id
        amount = payment.amount
        currency = payment.currency
        tran_ref = payment.transaction_id
        business_id = payment.business_id

        plan_name = started_at = ends_at = features = None
        if activation:
            plan_name = activation.plan.name
            started_at = activation.subscription.started_at
            ends_at = activation.subscription.ends_at
            features = activation.plan.feature_list

        user_email, business_name = await self._recipient(user_id, business_id, payment_id)

        await self._notify(
            user_id,
            NotificationType.PAYMENT_SUCCESS,
            f"Your payment of {amount} {currency} for {business_name} was successful.",
            link=f"/dashboard/payments/{payment_id}",
            payment_id=payment_id,
        )

        if activation:
            await self._notify(
                user_id,
                NotificationType.SUBSCRIPTION_ACTIVATED,
                f"The {plan_name} plan is now active for {business_name} until {ends_at:%Y-%m-%d}.",
                link="/dashboard/subscriptions",
                payment_id=payment_id,
            )

        if not user_email:
            logger.warning(f"No email address for user {user_id}, skipping payment emails")
            return

        await self._send(
            self.email.send_payment_receipt(
                to=user_email,
                business_name=business_name,
                amount=amount,
                currency=currency,
                transaction_ref=tran_ref,
                payment_id=str(payment_id),
            ),
            "payment receipt",
            payment_id,
        )

        if activation:
            await self._send(
                self.email.send_subscription_activated(
                    to=user_email,
                    business_name=business_name,
                    plan_name=plan_name,
                    started_at=started_at,
                    ends_at=ends_at,
                    features=features,
                ),
                "subscription activated",
                payment_id,
            )

    async def payment_failed(self, payment: Payment) -> None:
        """PAYMENT_FAILED notification."""
        payment_id = payment.id
        user_id = payment.user_id
        amount = payment.amount
        currency = payment.currency

        await self._notify(
            user_id,
            NotificationType.PAYMENT_FAILED,
            f"Your payment of {amount} {currency} could not be completed. Please try again.",
            link=f"/dashboard/payments/{payment_id}",
            payment_id=payment_id,
        )

    async def subscription_expiring(self, subscription: BusinessSubscription, now: Optional[datetime] = None) -> None:
        """Reminder for a subscription ending soon."""
        now = now or datetime.now(timezone.utc)
        business = await self.db.get(Business, subscription.business_id)
        plan = await self.db.get(SubscriptionPlan, subscription.plan_id)
        if not business or not plan:
            return

        owner = await self.db.get(User, business.user_id)
        ends_at = subscription.ends_at
        if ends_at.tzinfo is None:
            ends_at = ends_at.replace(tzinfo=timezone.utc)
        days = max((ends_at - now).days, 1)

        owner_id = business.user_id
        business_name = business.name
        plan_name = plan.name
        owner_email = owner.email if owner else None

        await self._notify(
            owner_id,
            NotificationType.SUBSCRIPTION_EXPIRING,
            f"Your {plan_name} subscription for {business_name} expires in {days} day{'s' if days != 1 else ''}.",
            link="/dashboard/subscriptions",
        )

        if owner_email:
            await self._send(
                self.email.send_subscription_expiry_reminder(
                    to=owner_email,
                    business_name=business_name,
                    plan_name=plan_name,
                    expiry_date=ends_at,
                    days_until_expiry=days,
                ),
                "subscription expiry reminder",
            )

    async def subscription_expired(self, subscription: BusinessSubscription) -> None:
        """SUBSCRIPTION_EXPIRED notification for the business owner."""
        business = await self.db.get(Business, subscription.business_id)
        if not business:
            return
        owner_id = business.user_id
        business_name = business.name

        await self._notify(
            owner_id,
            NotificationType.SUBSCRIPTION_EXPIRED,
            f"The subscription for {business_name} has expired. Renew to restore your benefits.",
            link="/dashboard/subscriptions",
        )

    async def _recipient(
        self,
        user_id: uuid.UUID,
        business_id: uuid.UUID,
        payment_id: Optional[uuid.UUID] = None,
    ) -> Tuple[Optional[str], str]:
        """Owner email and business name; a failed lookup degrades to no email."""
        try:
            user = await self.db.get(User, user_id)
            business = await self.db.get(Business, business_id)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to load recipient for user {user_id}: {e}",
                exc_info=True,
                extra={"payment_id": payment_id, "business_id": business_id},
            )
            return None, "your business"
        return (user.email if user else None), (business.name if business else "your business")

    async def _notify(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        message: str,
        link: Optional[str] = None,
        payment_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Create and commit one notification; failures are rolled back and logged."""
        try:
            await self.notifications.create_notification(
                user_id=user_id,
                type=type,
                title=type.default_title,
                message=message,
                link=link,
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to create {type.value} notification for user {user_id}: {e}",
                exc_info=True,
                extra={"payment_id": payment_id},
            )

    async def _send(self, send_coro, label: str, payment_id: Optional[uuid.UUID] = None) -> None:
        """Await an email send; failures are logged."""
        try:
            await send_coro
        except Exception as e:
            logger.warning(f"Failed to send {label} email: {e}", extra={"payment_id": payment_id})
