"""
Subscription Expiry Workers.

Daily: expire overdue subscriptions and remind owners of upcoming expiries.
"""

import logging
from app.workers.celery_app import celery_app
from app.database import get_db_context

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def sync_expired_subscriptions(self):
    """Mark ACTIVE subscriptions past their end date as EXPIRED."""
    import asyncio

    async def run():
        async with get_db_context() as db:
            from app.services.email_service import EmailService
            from app.services.subscription_jobs import sync_expired_subscriptions as sync_job

            return await sync_job(db, EmailService())

    try:
        result = asyncio.run(run())
        logger.info(f"Expired subscriptions synced: {result}")
        return {"success": True, **result}
    except Exception as e:
        logger.error(f"Expired subscription sync failed: {e}")
        self.retry(exc=e, countdown=60)


@celery_app.task(bind=True, max_retries=3)
def check_expiring_subscriptions(self, within_days: int = 7):
    """Email and notify owners whose subscription ends soon."""
    import asyncio

    async def run():
        async with get_db_context() as db:
            from app.services.email_service import EmailService
            from app.services.subscription_jobs import send_expiry_reminders

            return await send_expiry_reminders(db, EmailService(), within_days=within_days)

    try:
        result = asyncio.run(run())
        logger.info(f"Subscription expiry check completed: {result}")
        return {"success": True, **result}
    except Exception as e:
        logger.error(f"Subscription expiry check failed: {e}")
        self.retry(exc=e, countdown=60)
