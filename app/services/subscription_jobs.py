"""
Subscription Jobs - scheduled expiry sync and expiry reminders.
Shared by the Celery workers and the admin endpoints.
"""

import logging
from typing import Dict

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.email_service import EmailService
from app.services.payment_notifier import PaymentNotifier
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


async def sync_expired_subscriptions(db: AsyncSession, email: EmailService) -> Dict[str, int]:
    """Expire overdue subscriptions, then tell each owner."""
    service = SubscriptionService(db)
    expired = await service.sync_expired()
    expired_ids = [subscription.id for subscription in expired]
    await db.commit()

    notifier = PaymentNotifier(db, email)
    for subscription_id in expired_ids:
        subscription = await service.get_subscription(subscription_id)
        if subscription:
            await notifier.subscription_expired(subscription)

    logger.info(f"Expired subscriptions synced: {len(expired_ids)}")
    return {"processed": len(expired_ids)}


async def send_expiry_reminders(
    db: AsyncSession,
    email: EmailService,
    within_days: int = 7,
) -> Dict[str, int]:
    """Remind owners whose subscription ends within `within_days` days."""
    service = SubscriptionService(db)
    expiring = await service.find_expiring(within_days=within_days)
    expiring_ids = [subscription.id for subscription in expiring]

    notifier = PaymentNotifier(db, email)
    for subscription_id in expiring_ids:
        subscription = await service.get_subscription(subscription_id)
        if subscription:
            await notifier.subscription_expiring(subscription)

    logger.info(f"Expiry reminders sent: {len(expiring_ids)}")
    return {"reminded": len(expiring_ids)}
