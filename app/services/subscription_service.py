"""
Subscription Service - purchase, activation and expiry of business subscriptions.

activate_for_payment is the only code path that sets a subscription ACTIVE.
"""

import calendar
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, List, Tuple

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ActivationError, NotFoundError, PaymentValidationError
from app.fsm.states import BillingInterval, PaymentStatus, PlanStatus, SubscriptionStatus
from app.models.business import Business
from app.models.payment import Payment
from app.models.subscription import BusinessSubscription, SubscriptionPlan

logger = logging.getLogger(__name__)


def _add_months(start: datetime, months: int) -> datetime:
    """Calendar-aware month addition, clamping to the last day of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_end_date(
    start: datetime,
    interval: BillingInterval,
    count: int,
    custom_days: Optional[int] = None,
) -> datetime:
    """End of a billing period starting at `start`. Non-positive counts mean 1."""
    multiplier = count if count and count > 0 else 1
    interval = BillingInterval(interval)

    if interval == BillingInterval.DAY:
        return start + timedelta(days=multiplier)
    if interval == BillingInterval.WEEK:
        return start + timedelta(weeks=multiplier)
    if interval == BillingInterval.YEAR:
        return _add_months(start, 12 * multiplier)
    if interval == BillingInterval.CUSTOM:
        return start + timedelta(days=custom_days or 0)
    return _add_months(start, multiplier)


@dataclass
class ActivationResult:
    """What activate_for_payment changed."""

    subscription: BusinessSubscription
    plan: SubscriptionPlan
    business: Business


class SubscriptionService:
    """Service for business subscriptions and their entitlement snapshot."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_plan(self, plan_id: uuid.UUID) -> Optional[SubscriptionPlan]:
        return await self.db.get(SubscriptionPlan, plan_id)

    async def get_subscription(self, subscription_id: uuid.UUID) -> Optional[BusinessSubscription]:
        return await self.db.get(BusinessSubscription, subscription_id)

    async def get_latest_pending(self, business_id: uuid.UUID) -> Optional[BusinessSubscription]:
        """Most recently created PENDING subscription for a business."""
        result = await self.db.execute(
            select(BusinessSubscription)
            .where(
                BusinessSubscription.business_id == business_id,
                BusinessSubscription.status == SubscriptionStatus.PENDING.value,
            )
            .order_by(desc(BusinessSubscription.created_at))
            .limit(1)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def create_pending_subscription(
        self,
        business: Business,
        plan: SubscriptionPlan,
        start: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> BusinessSubscription:
        """Start a purchase: a PENDING subscription awaiting payment."""
        if plan.status != PlanStatus.ACTIVE.value:
            raise PaymentValidationError("Subscription plan is not active")

        started_at = start or datetime.now(timezone.utc)
        ends_at = compute_end_date(
            started_at,
            BillingInterval(plan.billing_interval),
            plan.interval_count,
            plan.custom_interval_days,
        )

        price = Decimal(plan.price)
        effective_price = Decimal(plan.effective_price)

        subscription = BusinessSubscription(
            business_id=business.id,
            plan_id=plan.id,
            status=SubscriptionStatus.PENDING.value,
            started_at=started_at,
            ends_at=ends_at,
            price=price,
            discount_amount=price - effective_price,
            total_amount=effective_price,
            notes=notes,
        )
        self.db.add(subscription)
        await self.db.flush()

        logger.info(
            f"Pending subscription {subscription.id} created for business {business.id} on plan {plan.slug}",
            extra={"business_id": business.id, "subscription_id": subscription.id},
        )
        return subscription

    async def activate_for_payment(self, payment: Payment) -> Optional[ActivationResult]:
        """
        Activate the business's latest PENDING subscription for a completed payment.

        1. Find the most recent PENDING subscription for payment.business_id
        2. None -> nothing to do (one-off payment)
        3. Plan or business missing -> ActivationError before anything is written
        4. Compare-and-set it to ACTIVE, record reference and provider,
           copy plan entitlements onto the business
        Returns None when nothing was activated.
        """
        if payment.status != PaymentStatus.COMPLETED.value:
            raise PaymentValidationError("Only completed payments can activate subscriptions")

        subscription = await self.get_latest_pending(payment.business_id)
        if not subscription:
            logger.info(
                f"No pending subscription for business {payment.business_id}, payment {payment.id} is standalone",
                extra={"payment_id": payment.id, "business_id": payment.business_id},
            )
            return None

        plan = await self.get_plan(subscription.plan_id)
        business = await self.db.get(Business, payment.business_id, with_for_update=True)
        if not plan or not business:
            raise ActivationError(
                f"Subscription {subscription.id} references a missing plan or business"
            )

        result = await self.db.execute(
            update(BusinessSubscription)
            .where(
                BusinessSubscription.id == subscription.id,
                BusinessSubscription.status == SubscriptionStatus.PENDING.value,
            )
            .values(
                status=SubscriptionStatus.ACTIVE.value,
                payment_reference=payment.transaction_id,
                payment_provider=payment.payment_method,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(subscription)

        if result.rowcount != 1:
            logger.warning(
                f"Subscription {subscription.id} left PENDING before activation, now {subscription.status}",
                extra={"subscription_id": subscription.id},
            )
            return None

        self._apply_entitlements(business, plan, subscription)
        await self.db.flush()

        logger.info(
            f"Subscription {subscription.id} activated for business {business.id} by payment {payment.id}",
            extra={"payment_id": payment.id, "business_id": business.id, "subscription_id": subscription.id},
        )
        return ActivationResult(subscription=subscription, plan=plan, business=business)

    async def fail_for_payment(self, payment: Payment) -> Optional[BusinessSubscription]:
        """Mark the business's latest PENDING subscription FAILED. Entitlements are untouched."""
        subscription = await self.get_latest_pending(payment.business_id)
        if not subscription:
            return None

        result = await self.db.execute(
            update(BusinessSubscription)
            .where(
                BusinessSubscription.id == subscription.id,
                BusinessSubscription.status == SubscriptionStatus.PENDING.value,
            )
            .values(
                status=SubscriptionStatus.FAILED.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(subscription)

        if result.rowcount != 1:
            return None

        logger.info(
            f"Subscription {subscription.id} failed with payment {payment.id}",
            extra={"payment_id": payment.id, "subscription_id": subscription.id},
        )
        return subscription

    async def mark_failed(self, subscription: BusinessSubscription) -> BusinessSubscription:
        """Fail a PENDING subscription whose checkout never reached the gateway."""
        if subscription.status == SubscriptionStatus.PENDING.value:
            subscription.status = SubscriptionStatus.FAILED.value
            await self.db.flush()
        return subscription

    async def cancel_subscription(self, subscription_id: uuid.UUID) -> BusinessSubscription:
        """Cancel an ACTIVE subscription and drop the business's entitlements if it was current."""
        subscription = await self.get_subscription(subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")

        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise PaymentValidationError("Only active subscriptions can be cancelled")

        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = datetime.now(timezone.utc)

        business = await self.db.get(Business, subscription.business_id)
        if business and business.current_subscription_id == subscription.id:
            self._clear_entitlements(business)
            business.subscription_expires_at = subscription.ends_at

        await self.db.flush()
        logger.info(f"Subscription {subscription.id} cancelled", extra={"subscription_id": subscription.id})
        return subscription

    async def sync_expired(self, now: Optional[datetime] = None) -> List[BusinessSubscription]:
        """Expire ACTIVE subscriptions whose end date has passed."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(BusinessSubscription).where(
                BusinessSubscription.status == SubscriptionStatus.ACTIVE.value,
                BusinessSubscription.ends_at < now,
            )
        )
        expired = list(result.scalars().all())

        for subscription in expired:
            subscription.status = SubscriptionStatus.EXPIRED.value
            business = await self.db.get(Business, subscription.business_id)
            if business and business.current_subscription_id == subscription.id:
                self._clear_entitlements(business)

        await self.db.flush()
        if expired:
            logger.info(f"Expired {len(expired)} subscriptions")
        return expired

    async def find_expiring(
        self,
        within_days: int = 7,
        now: Optional[datetime] = None,
    ) -> List[BusinessSubscription]:
        """ACTIVE subscriptions ending within the next `within_days` days."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(BusinessSubscription)
            .where(
                BusinessSubscription.status == SubscriptionStatus.ACTIVE.value,
                BusinessSubscription.ends_at >= now,
                BusinessSubscription.ends_at <= now + timedelta(days=within_days),
            )
            .order_by(BusinessSubscription.ends_at)
        )
        return list(result.scalars().all())

    async def list_subscriptions(
        self,
        business_id: Optional[uuid.UUID] = None,
        status: Optional[SubscriptionStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[BusinessSubscription], int]:
        """Paginated subscription listing, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if business_id:
            conditions.append(BusinessSubscription.business_id == business_id)
        if status:
            conditions.append(BusinessSubscription.status == status.value)

        total_result = await self.db.execute(
            select(func.count()).select_from(BusinessSubscription).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(BusinessSubscription)
            .where(*conditions)
            .order_by(desc(BusinessSubscription.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # Plan catalogue

    async def list_plans(
        self,
        status: Optional[PlanStatus] = PlanStatus.ACTIVE,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SubscriptionPlan], int]:
        """Paginated plans, cheapest first. `status=None` lists every plan."""
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if status:
            conditions.append(SubscriptionPlan.status == status.value)

        total = (
            await self.db.execute(select(func.count()).select_from(SubscriptionPlan).where(*conditions))
        ).scalar_one()

        result = await self.db.execute(
            select(SubscriptionPlan)
            .where(*conditions)
            .order_by(SubscriptionPlan.price, SubscriptionPlan.name)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def create_plan(self, values: Dict[str, Any]) -> SubscriptionPlan:
        """Add a plan to the catalogue."""
        plan = SubscriptionPlan(**values)
        self._validate_plan(plan)
        await self._ensure_unique_slug(plan.slug)

        self.db.add(plan)
        await self.db.flush()
        logger.info(f"Subscription plan {plan.slug} created")
        return plan

    async def update_plan(self, plan_id: uuid.UUID, changes: Dict[str, Any]) -> SubscriptionPlan:
        """
        Change plan fields. Existing subscriptions keep the prices they were
        bought at; entitlements are read from the plan at activation time.
        """
        plan = await self.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Subscription plan not found")

        new_slug = changes.get("slug")
        if new_slug and new_slug != plan.slug:
            await self._ensure_unique_slug(new_slug)

        for field, value in changes.items():
            setattr(plan, field, value)
        self._validate_plan(plan)

        await self.db.flush()
        logger.info(f"Subscription plan {plan.slug} updated: {sorted(changes)}")
        return plan

    async def archive_plan(self, plan_id: uuid.UUID) -> SubscriptionPlan:
        """Withdraw a plan from sale. Subscriptions already on it are unaffected."""
        plan = await self.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Subscription plan not found")
        plan.status = PlanStatus.ARCHIVED.value
        await self.db.flush()
        logger.info(f"Subscription plan {plan.slug} archived")
        return plan

    async def _ensure_unique_slug(self, slug: str) -> None:
        existing = await self.db.execute(
            select(SubscriptionPlan.id).where(SubscriptionPlan.slug == slug)
        )
        if existing.first():
            raise PaymentValidationError(f"A plan with slug '{slug}' already exists")

    @staticmethod
    def _validate_plan(plan: SubscriptionPlan) -> None:
        if plan.price is None or Decimal(plan.price) <= 0:
            raise PaymentValidationError("Plan price must be positive")
        if plan.sale_price is not None and not (0 <= Decimal(plan.sale_price) <= Decimal(plan.price)):
            raise PaymentValidationError("Sale price must be between 0 and the plan price")
        if plan.interval_count is not None and plan.interval_count < 1:
            raise PaymentValidationError("Interval count must be at least 1")
        if plan.billing_interval == BillingInterval.CUSTOM.value and not plan.custom_interval_days:
            raise PaymentValidationError("Custom billing interval requires custom interval days")

    @staticmethod
    def _apply_entitlements(
        business: Business,
        plan: SubscriptionPlan,
        subscription: BusinessSubscription,
    ) -> None:
        """Copy plan flags onto the business. The verified flag is only ever raised here."""
        business.current_subscription_id = subscription.id
        business.subscription_started_at = subscription.started_at
        business.subscription_expires_at = subscription.ends_at
        business.can_create_advertisements = plan.allow_advertisements
        business.promoted_until = subscription.ends_at if plan.top_placement else None
        business.has_priority_support = plan.priority_support
        if plan.verified_badge:
            business.is_verified = True

    @staticmethod
    def _clear_entitlements(business: Business) -> None:
        business.current_subscription_id = None
        business.can_create_advertisements = False
        business.promoted_until = None
        business.is_verified = False
        business.has_priority_support = False
