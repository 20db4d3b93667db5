"""
Subscription Endpoints.
Purchase (PENDING subscription + payment), listing, cancellation and expiry maintenance.
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_admin_user, get_current_user
from app.api.serializers import pagination, serialize_subscription
from app.database import get_db
from app.exceptions import GatewayError
from app.fsm.states import SubscriptionStatus
from app.models.business import Business
from app.services.checkout_service import CheckoutService
from app.services.email_service import EmailService, get_email_service
from app.services.paytabs_service import PayTabsService, get_paytabs_service
from app.services.subscription_jobs import send_expiry_reminders, sync_expired_subscriptions
from app.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


class PurchaseSubscriptionRequest(BaseModel):
    """Request body for buying a plan for a business."""

    model_config = ConfigDict(populate_by_name=True)

    business_id: uuid.UUID = Field(alias="businessId")
    plan_id: uuid.UUID = Field(alias="planId")
    return_url: Optional[str] = Field(default=None, alias="returnUrl")


@router.post("/purchase", status_code=201)
async def purchase_subscription(
    request: PurchaseSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PayTabsService = Depends(get_paytabs_service),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Start a subscription purchase.

    Creates a PENDING subscription and its payment, and returns the PayTabs
    page to pay on. The completed payment activates the subscription.
    """
    business = await db.get(Business, request.business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    if business.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="You are not authorized to subscribe this business")

    checkout = CheckoutService(db, gateway)
    try:
        result = await checkout.start_subscription_purchase(
            user_id=user.id,
            business_id=request.business_id,
            plan_id=request.plan_id,
            return_url=request.return_url,
        )
    except GatewayError as e:
        return JSONResponse(
            status_code=502,
            content={
                "status": "error",
                "message": "Failed to create payment page with PayTabs",
                "error": e.message,
            },
        )

    return {
        "status": "success",
        "message": "Subscription checkout created successfully",
        "data": {
            "subscriptionId": str(result.subscription_id),
            "paymentId": str(result.payment_id),
            "redirectUrl": result.redirect_url,
            "transactionRef": result.transaction_ref,
        },
    }


@router.get("")
async def list_subscriptions(
    business_id: Optional[uuid.UUID] = Query(None, alias="businessId"),
    status: Optional[SubscriptionStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Subscriptions, filtered by business and status. Non-admins must name their own business."""
    if not user.is_admin:
        if not business_id:
            raise HTTPException(status_code=400, detail="businessId is required")
        business = await db.get(Business, business_id)
        if not business or business.user_id != user.id:
            raise HTTPException(status_code=403, detail="You are not authorized to view these subscriptions")

    subscriptions, total = await SubscriptionService(db).list_subscriptions(
        business_id=business_id,
        status=status,
        page=page,
        limit=limit,
    )
    return {
        "status": "success",
        "message": "Subscriptions fetched successfully",
        "data": {
            "subscriptions": [serialize_subscription(s) for s in subscriptions],
            "pagination": pagination(total, page, limit),
        },
    }


@router.post("/sync/expired")
async def sync_expired(
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    """Expire overdue subscriptions now (normally run by the scheduler)."""
    result = await sync_expired_subscriptions(db, email)
    return {"status": "success", "message": "Expired subscriptions synced successfully", "data": result}


@router.post("/check/expiring")
async def check_expiring(
    days: int = Query(7, ge=1, le=60),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    """Send expiry reminders now (normally run by the scheduler)."""
    result = await send_expiry_reminders(db, email, within_days=days)
    return {"status": "success", "message": "Subscription expiry check completed", "data": result}


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    subscription = await SubscriptionService(db).get_subscription(subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")

    if not user.is_admin:
        business = await db.get(Business, subscription.business_id)
        if not business or business.user_id != user.id:
            raise HTTPException(status_code=403, detail="You are not authorized to view this subscription")

    return {
        "status": "success",
        "message": "Subscription fetched successfully",
        "data": serialize_subscription(subscription),
    }


@router.post("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    """Cancel an ACTIVE subscription."""
    subscription = await SubscriptionService(db).cancel_subscription(subscription_id)
    return {
        "status": "success",
        "message": "Subscription cancelled successfully",
        "data": serialize_subscription(subscription),
    }
