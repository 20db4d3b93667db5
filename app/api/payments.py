"""
Payment Endpoints.
Checkout creation and payment listings for owners and admins.
"""

import uuid
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_admin_user, get_current_user
from app.api.serializers import pagination, serialize_payment
from app.database import get_db
from app.exceptions import GatewayError
from app.fsm.states import PaymentStatus
from app.models.business import Business
from app.services.checkout_service import CheckoutService
from app.services.payment_service import PaymentService
from app.services.paytabs_service import PayTabsService, get_paytabs_service

router = APIRouter()
logger = logging.getLogger(__name__)


class CreatePaymentRequest(BaseModel):
    """Request body for starting a payment."""

    model_config = ConfigDict(populate_by_name=True)

    business_id: uuid.UUID = Field(alias="businessId")
    amount: Optional[Union[Decimal, str]] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    description: Optional[str] = None
    return_url: Optional[str] = Field(default=None, alias="returnUrl")


@router.post("", status_code=201)
async def create_payment(
    request: CreatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PayTabsService = Depends(get_paytabs_service),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Create a PENDING payment and a PayTabs hosted payment page.

    On a PayTabs failure the payment is marked FAILED and the upstream
    error message is returned.
    """
    if request.amount is None:
        raise HTTPException(status_code=400, detail="Business ID and amount are required")

    checkout = CheckoutService(db, gateway)
    try:
        result = await checkout.start_payment(
            user_id=user.id,
            business_id=request.business_id,
            amount=request.amount,
            currency=request.currency,
            description=request.description,
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
        "message": "Payment page created successfully",
        "data": {
            "paymentId": str(result.payment_id),
            "redirectUrl": result.redirect_url,
            "transactionRef": result.transaction_ref,
        },
    }


@router.get("/my-payments")
async def get_my_payments(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Payments made by the caller."""
    payments = await PaymentService(db).list_by_user(user.id)
    return {
        "status": "success",
        "message": "Payments fetched successfully",
        "data": [serialize_payment(payment) for payment in payments],
    }


@router.get("/business/{business_id}")
async def get_business_payments(
    business_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Payments for a business; owner or admin only."""
    business = await db.get(Business, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")

    if business.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="You are not authorized to view these payments")

    payments = await PaymentService(db).list_by_business(business_id)
    return {
        "status": "success",
        "message": "Business payments fetched successfully",
        "data": [serialize_payment(payment) for payment in payments],
    }


@router.get("/admin/all")
async def get_all_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[PaymentStatus] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    """All payments with pagination, status and date filters."""
    payments, total = await PaymentService(db).list_all(
        page=page,
        limit=limit,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "status": "success",
        "message": "All payments fetched successfully",
        "data": {
            "payments": [serialize_payment(payment) for payment in payments],
            "pagination": pagination(total, page, limit),
        },
    }


@router.get("/{payment_id}")
async def get_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Single payment; owner or admin only."""
    payment = await PaymentService(db).get_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")

    if payment.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="You are not authorized to view this payment")

    return {
        "status": "success",
        "message": "Payment fetched successfully",
        "data": serialize_payment(payment),
    }
