"""Subscription models - plans and per-business subscriptions."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Boolean, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import BillingInterval, PlanStatus, SubscriptionStatus


class SubscriptionPlan(Base):
    """
    Purchasable plan.
    Read-only during activation; its flags are copied onto the business.
    """

    __tablename__ = "subscription_plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sale_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="SAR", nullable=False)

    # Billing period
    billing_interval: Mapped[str] = mapped_column(
        String(10),
        default=BillingInterval.MONTH.value,
        nullable=False,
    )
    interval_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    custom_interval_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Entitlements
    allow_advertisements: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    top_placement: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_badge: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority_support: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        default=PlanStatus.ACTIVE.value,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def effective_price(self) -> Decimal:
        return self.sale_price if self.sale_price is not None else self.price

    @property
    def feature_list(self) -> List[str]:
        """Human readable entitlements, used in activation emails."""
        features = []
        if self.allow_advertisements:
            features.append("Create advertisements")
        if self.top_placement:
            features.append("Top placement in listings")
        if self.verified_badge:
            features.append("Verified badge")
        if self.priority_support:
            features.append("Priority support")
        return features

    def __repr__(self) -> str:
        return f"<SubscriptionPlan {self.slug}>"


class BusinessSubscription(Base):
    """
    Subscription of a business to a plan.

    Correlated with its payment through business id and recency: the most
    recently created PENDING row for the business is the one a completed
    payment activates.
    """

    __tablename__ = "business_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=SubscriptionStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Price snapshot at purchase time
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Gateway transaction reference and provider, recorded on activation
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<BusinessSubscription {self.id} {self.status}>"
