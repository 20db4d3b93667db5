"""
Pending Payment Reconciliation Worker.

Polling fallback for payments whose PayTabs callback and browser return
both went missing.
"""

import logging
from app.workers.celery_app import celery_app
from app.database import get_db_context

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def reconcile_pending_payments(self, older_than_minutes=None, limit=None):
    """Re-verify stale PENDING payments with PayTabs."""
    import asyncio

    async def run():
        async with get_db_context() as db:
            from app.services.email_service import EmailService
            from app.services.payment_notifier import PaymentNotifier
            from app.services.paytabs_service import PayTabsService
            from app.services.reconciliation_service import ReconciliationService

            service = ReconciliationService(db, PayTabsService(), PaymentNotifier(db, EmailService()))
            return await service.reconcile_stale_pending(older_than_minutes, limit)

    try:
        counts = asyncio.run(run())
        logger.info(f"Pending payments reconciled: {counts}")
        return {"success": True, **counts}
    except Exception as e:
        logger.error(f"Pending payment reconciliation failed: {e}")
        self.retry(exc=e, countdown=60)
