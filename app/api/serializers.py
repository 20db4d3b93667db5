"""JSON shapes returned by the API."""

from datetime import datetime
from typing import Any, Dict, Optional

from app.models.notification import Notification
from app.models.payment import Payment
from app.models.subscription import BusinessSubscription, SubscriptionPlan


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_payment(payment: Payment) -> Dict[str, Any]:
    return {
        "id": str(payment.id),
        "userId": str(payment.user_id),
        "businessId": str(payment.business_id),
        "amount": float(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "paymentMethod": payment.payment_method,
        "transactionId": payment.transaction_id,
        "description": payment.description,
        "createdAt": _iso(payment.created_at),
        "updatedAt": _iso(payment.updated_at),
    }


def serialize_subscription(subscription: BusinessSubscription) -> Dict[str, Any]:
    return {
        "id": str(subscription.id),
        "businessId": str(subscription.business_id),
        "planId": str(subscription.plan_id),
        "status": subscription.status,
        "startedAt": _iso(subscription.started_at),
        "endsAt": _iso(subscription.ends_at),
        "price": float(subscription.price),
        "discountAmount": float(subscription.discount_amount),
        "totalAmount": float(subscription.total_amount),
        "paymentReference": subscription.payment_reference,
        "paymentProvider": subscription.payment_provider,
        "notes": subscription.notes,
        "cancelledAt": _iso(subscription.cancelled_at),
        "createdAt": _iso(subscription.created_at),
    }


def serialize_plan(plan: SubscriptionPlan) -> Dict[str, Any]:
    return {
        "id": str(plan.id),
        "name": plan.name,
        "slug": plan.slug,
        "description": plan.description,
        "price": float(plan.price),
        "salePrice": float(plan.sale_price) if plan.sale_price is not None else None,
        "effectivePrice": float(plan.effective_price),
        "currency": plan.currency,
        "billingInterval": plan.billing_interval,
        "intervalCount": plan.interval_count,
        "customIntervalDays": plan.custom_interval_days,
        "allowAdvertisements": plan.allow_advertisements,
        "topPlacement": plan.top_placement,
        "verifiedBadge": plan.verified_badge,
        "prioritySupport": plan.priority_support,
        "features": plan.feature_list,
        "status": plan.status,
        "createdAt": _iso(plan.created_at),
    }


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "isRead": notification.is_read,
        "createdAt": _iso(notification.created_at),
    }


def pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": (total + limit - 1) // limit if limit else 0,
    }
