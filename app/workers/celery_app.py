"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

celery_app = Celery(
    "mawjood",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.subscription_expiry",
        "app.workers.pending_payments",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.default_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Mark overdue subscriptions EXPIRED daily at 9:00 AM Riyadh
    "sync-expired-subscriptions": {
        "task": "app.workers.subscription_expiry.sync_expired_subscriptions",
        "schedule": crontab(hour=9, minute=0),
    },
    # Reminders for subscriptions ending within 7 days, daily at 9:00 AM Riyadh
    "check-expiring-subscriptions": {
        "task": "app.workers.subscription_expiry.check_expiring_subscriptions",
        "schedule": crontab(hour=9, minute=0),
    },
    # Re-verify payments whose PayTabs callback never arrived
    "reconcile-pending-payments": {
        "task": "app.workers.pending_payments.reconcile_pending_payments",
        "schedule": crontab(minute="*/15"),
    },
}
