"""
Subscription Plan Endpoints.
Public catalogue for businesses choosing a plan; changes are admin-only.
"""

import uuid
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, get_admin_user
from app.api.serializers import pagination, serialize_plan
from app.database import get_db
from app.fsm.states import BillingInterval, PlanStatus
from app.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


NULLABLE_FIELDS = frozenset({"description", "sale_price", "custom_interval_days"})


class PlanFields(BaseModel):
    """Editable plan fields, camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = Field(default=None, alias="salePrice")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    billing_interval: Optional[BillingInterval] = Field(default=None, alias="billingInterval")
    interval_count: Optional[int] = Field(default=None, alias="intervalCount")
    custom_interval_days: Optional[int] = Field(default=None, alias="customIntervalDays")
    allow_advertisements: Optional[bool] = Field(default=None, alias="allowAdvertisements")
    top_placement: Optional[bool] = Field(default=None, alias="topPlacement")
    verified_badge: Optional[bool] = Field(default=None, alias="verifiedBadge")
    priority_support: Optional[bool] = Field(default=None, alias="prioritySupport")
    status: Optional[PlanStatus] = None

    def changes(self) -> dict:
        """Fields the client actually sent, enums flattened to their values."""
        values = {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_FIELDS
        }
        for key, value in values.items():
            if isinstance(value, (BillingInterval, PlanStatus)):
                values[key] = value.value
        if values.get("currency"):
            values["currency"] = values["currency"].upper()
        return values


class CreatePlanRequest(PlanFields):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=100)
    price: Decimal


@router.get("")
async def list_plans(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PlanStatus] = Query(PlanStatus.ACTIVE),
    db: AsyncSession = Depends(get_db),
):
    """Plans on sale. Pass another status to browse inactive or archived ones."""
    plans, total = await SubscriptionService(db).list_plans(status=status, page=page, limit=limit)
    return {
        "status": "success",
        "message": "Subscription plans fetched successfully",
        "data": {
            "plans": [serialize_plan(plan) for plan in plans],
            "pagination": pagination(total, page, limit),
        },
    }


@router.get("/{plan_id}")
async def get_plan(
    plan_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    plan = await SubscriptionService(db).get_plan(plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Subscription plan not found")
    return {
        "status": "success",
        "message": "Subscription plan fetched successfully",
        "data": serialize_plan(plan),
    }


@router.post("", status_code=201)
async def create_plan(
    request: CreatePlanRequest,
    db: AsyncSession = Depends(get_db),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    plan = await SubscriptionService(db).create_plan(request.changes())
    return {
        "status": "success",
        "message": "Subscription plan created successfully",
        "data": serialize_plan(plan),
    }


@router.patch("/{plan_id}")
async def update_plan(
    plan_id: uuid.UUID,
    request: PlanFields,
    db: AsyncSession = Depends(get_db),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    plan = await SubscriptionService(db).update_plan(plan_id, request.changes())
    return {
        "status": "success",
        "message": "Subscription plan updated successfully",
        "data": serialize_plan(plan),
    }


@router.delete("/{plan_id}")
async def archive_plan(
    plan_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: Optional[CurrentUser] = Depends(get_admin_user),
):
    plan = await SubscriptionService(db).archive_plan(plan_id)
    return {
        "status": "success",
        "message": "Subscription plan archived successfully",
        "data": serialize_plan(plan),
    }
