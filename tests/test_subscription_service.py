"""
Tests for SubscriptionService.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.exceptions import NotFoundError, PaymentValidationError
from app.fsm.states import BillingInterval, PaymentStatus, PlanStatus, SubscriptionStatus
from app.models.payment import Payment
from app.models.subscription import BusinessSubscription
from app.services.subscription_service import SubscriptionService, compute_end_date

START = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "interval, count, custom_days, expected",
    [
        (BillingInterval.DAY, 10, None, datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.WEEK, 2, None, datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.MONTH, 1, None, datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.MONTH, 13, None, datetime(2027, 2, 28, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.YEAR, 1, None, datetime(2027, 1, 31, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.CUSTOM, 1, 45, datetime(2026, 3, 17, 12, 0, tzinfo=timezone.utc)),
        (BillingInterval.MONTH, 0, None, datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)),
    ],
)
def test_compute_end_date(interval, count, custom_days, expected):
    assert compute_end_date(START, interval, count, custom_days) == expected


def test_compute_end_date_leap_year():
    assert compute_end_date(
        datetime(2028, 1, 31, tzinfo=timezone.utc), BillingInterval.MONTH, 1
    ) == datetime(2028, 2, 29, tzinfo=timezone.utc)


async def _completed_payment(db, user, business, tran_ref="TST1") -> Payment:
    payment = Payment(
        user_id=user.id,
        business_id=business.id,
        amount=Decimal("299.00"),
        status=PaymentStatus.COMPLETED.value,
        transaction_id=tran_ref,
    )
    db.add(payment)
    await db.flush()
    return payment


@pytest.mark.asyncio
async def test_create_pending_subscription_uses_sale_price(db, business, make_plan):
    plan = await make_plan(price=Decimal("299.00"), sale_price=Decimal("249.00"))

    subscription = await SubscriptionService(db).create_pending_subscription(business, plan, start=START)

    assert subscription.status == SubscriptionStatus.PENDING.value
    assert subscription.started_at == START
    assert subscription.ends_at == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert subscription.price == Decimal("299.00")
    assert subscription.discount_amount == Decimal("50.00")
    assert subscription.total_amount == Decimal("249.00")


@pytest.mark.asyncio
async def test_create_pending_subscription_inactive_plan(db, business, make_plan):
    plan = await make_plan(status=PlanStatus.INACTIVE.value)

    with pytest.raises(PaymentValidationError):
        await SubscriptionService(db).create_pending_subscription(business, plan)


@pytest.mark.asyncio
async def test_activate_copies_entitlements(db, user, business, make_plan):
    plan = await make_plan()
    service = SubscriptionService(db)
    subscription = await service.create_pending_subscription(business, plan)
    await db.commit()

    payment = await _completed_payment(db, user, business, "TST-ACT")
    result = await service.activate_for_payment(payment)

    assert result is not None
    assert result.subscription.id == subscription.id
    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.payment_reference == "TST-ACT"
    assert subscription.payment_provider == "PAYTABS"

    assert business.current_subscription_id == subscription.id
    assert business.can_create_advertisements is True
    assert business.has_priority_support is True
    assert business.is_verified is True
    assert business.promoted_until == subscription.ends_at
    assert business.subscription_expires_at == subscription.ends_at


@pytest.mark.asyncio
async def test_activate_picks_latest_pending(db, user, business, make_plan):
    plan = await make_plan()
    service = SubscriptionService(db)
    older = await service.create_pending_subscription(business, plan)
    older.created_at = datetime.now(timezone.utc) - timedelta(hours=1)
    newer = await service.create_pending_subscription(business, plan)
    await db.commit()

    payment = await _completed_payment(db, user, business)
    result = await service.activate_for_payment(payment)

    assert result.subscription.id == newer.id
    await db.refresh(older)
    assert older.status == SubscriptionStatus.PENDING.value


@pytest.mark.asyncio
async def test_activate_never_clears_verified_flag(db, user, business, make_plan):
    business.is_verified = True
    await db.commit()

    plan = await make_plan(verified_badge=False, top_placement=False, allow_advertisements=False)
    service = SubscriptionService(db)
    await service.create_pending_subscription(business, plan)
    await db.commit()

    payment = await _completed_payment(db, user, business)
    await service.activate_for_payment(payment)

    assert business.is_verified is True
    assert business.promoted_until is None
    assert business.can_create_advertisements is False


@pytest.mark.asyncio
async def test_activate_without_pending_subscription(db, user, business):
    payment = await _completed_payment(db, user, business)

    assert await SubscriptionService(db).activate_for_payment(payment) is None
    assert business.current_subscription_id is None


@pytest.mark.asyncio
async def test_activate_requires_completed_payment(db, user, business):
    payment = Payment(user_id=user.id, business_id=business.id, amount=Decimal("10"))
    db.add(payment)
    await db.flush()

    with pytest.raises(PaymentValidationError):
        await SubscriptionService(db).activate_for_payment(payment)


@pytest.mark.asyncio
async def test_fail_for_payment_leaves_entitlements(db, user, business, make_plan):
    plan = await make_plan()
    service = SubscriptionService(db)
    subscription = await service.create_pending_subscription(business, plan)
    await db.commit()

    payment = Payment(user_id=user.id, business_id=business.id, amount=Decimal("10"),
                      status=PaymentStatus.FAILED.value)
    db.add(payment)
    await db.flush()

    failed = await service.fail_for_payment(payment)

    assert failed.id == subscription.id
    assert subscription.status == SubscriptionStatus.FAILED.value
    assert business.current_subscription_id is None
    assert business.is_verified is False


async def _active_subscription(db, business, plan, ends_at) -> BusinessSubscription:
    subscription = BusinessSubscription(
        business_id=business.id,
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE.value,
        started_at=ends_at - timedelta(days=30),
        ends_at=ends_at,
        price=Decimal("299.00"),
        total_amount=Decimal("299.00"),
    )
    db.add(subscription)
    await db.flush()
    return subscription


@pytest.mark.asyncio
async def test_sync_expired_clears_current_entitlements(db, business, make_plan):
    plan = await make_plan()
    now = datetime.now(timezone.utc)
    subscription = await _active_subscription(db, business, plan, now - timedelta(days=1))
    business.current_subscription_id = subscription.id
    business.is_verified = True
    business.can_create_advertisements = True
    await db.commit()

    expired = await SubscriptionService(db).sync_expired(now)

    assert [s.id for s in expired] == [subscription.id]
    assert subscription.status == SubscriptionStatus.EXPIRED.value
    assert business.current_subscription_id is None
    assert business.is_verified is False
    assert business.can_create_advertisements is False


@pytest.mark.asyncio
async def test_sync_expired_keeps_newer_subscription_entitlements(db, business, make_plan):
    plan = await make_plan()
    now = datetime.now(timezone.utc)
    old = await _active_subscription(db, business, plan, now - timedelta(days=1))
    current = await _active_subscription(db, business, plan, now + timedelta(days=29))
    business.current_subscription_id = current.id
    business.is_verified = True
    await db.commit()

    await SubscriptionService(db).sync_expired(now)

    assert old.status == SubscriptionStatus.EXPIRED.value
    assert current.status == SubscriptionStatus.ACTIVE.value
    assert business.current_subscription_id == current.id
    assert business.is_verified is True


@pytest.mark.asyncio
async def test_find_expiring(db, business, make_plan):
    plan = await make_plan()
    now = datetime.now(timezone.utc)
    soon = await _active_subscription(db, business, plan, now + timedelta(days=3))
    await _active_subscription(db, business, plan, now + timedelta(days=20))
    await db.commit()

    expiring = await SubscriptionService(db).find_expiring(within_days=7, now=now)

    assert [s.id for s in expiring] == [soon.id]


@pytest.mark.asyncio
async def test_cancel_subscription(db, business, make_plan):
    plan = await make_plan()
    subscription = await _active_subscription(db, business, plan, datetime.now(timezone.utc) + timedelta(days=10))
    business.current_subscription_id = subscription.id
    business.has_priority_support = True
    await db.commit()

    cancelled = await SubscriptionService(db).cancel_subscription(subscription.id)

    assert cancelled.status == SubscriptionStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None
    assert business.current_subscription_id is None
    assert business.has_priority_support is False


@pytest.mark.asyncio
async def test_cancel_requires_active(db, business, make_plan):
    plan = await make_plan()
    service = SubscriptionService(db)
    pending = await service.create_pending_subscription(business, plan)
    await db.commit()

    with pytest.raises(PaymentValidationError):
        await service.cancel_subscription(pending.id)

    with pytest.raises(NotFoundError):
        await service.cancel_subscription(uuid.uuid4())


@pytest.mark.asyncio
async def test_list_subscriptions(db, business, make_plan):
    plan = await make_plan()
    service = SubscriptionService(db)
    await service.create_pending_subscription(business, plan)
    await _active_subscription(db, business, plan, datetime.now(timezone.utc) + timedelta(days=5))
    await db.commit()

    everything, total = await service.list_subscriptions(business_id=business.id)
    active, active_total = await service.list_subscriptions(status=SubscriptionStatus.ACTIVE)

    assert total == 2
    assert len(everything) == 2
    assert active_total == 1
    assert active[0].status == SubscriptionStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_list_plans_defaults_to_plans_on_sale(db, make_plan):
    await make_plan(name="Gold", price=Decimal("499.00"))
    await make_plan(name="Basic", price=Decimal("99.00"))
    await make_plan(name="Legacy", status=PlanStatus.ARCHIVED.value)
    service = SubscriptionService(db)

    on_sale, total = await service.list_plans()
    everything, everything_total = await service.list_plans(status=None)

    assert [plan.name for plan in on_sale] == ["Basic", "Gold"]
    assert total == 2
    assert everything_total == 3


@pytest.mark.asyncio
async def test_create_plan_validates_pricing_and_slug(db, make_plan):
    await make_plan(slug="gold")
    service = SubscriptionService(db)

    with pytest.raises(PaymentValidationError):
        await service.create_plan({"name": "Gold", "slug": "gold", "price": Decimal("100")})
    with pytest.raises(PaymentValidationError):
        await service.create_plan({"name": "Free", "slug": "free", "price": Decimal("0")})
    with pytest.raises(PaymentValidationError):
        await service.create_plan(
            {"name": "Promo", "slug": "promo", "price": Decimal("100"), "sale_price": Decimal("150")}
        )
    with pytest.raises(PaymentValidationError):
        await service.create_plan(
            {"name": "Event", "slug": "event", "price": Decimal("100"),
             "billing_interval": BillingInterval.CUSTOM.value}
        )

    plan = await service.create_plan(
        {"name": "Event", "slug": "event", "price": Decimal("100"),
         "billing_interval": BillingInterval.CUSTOM.value, "custom_interval_days": 45}
    )
    await db.commit()
    assert plan.status == PlanStatus.ACTIVE.value
    assert plan.interval_count == 1


@pytest.mark.asyncio
async def test_update_and_archive_plan(db, business, make_plan):
    plan = await make_plan(slug="silver")
    service = SubscriptionService(db)

    updated = await service.update_plan(plan.id, {"sale_price": Decimal("199.00"), "top_placement": False})
    assert updated.effective_price == Decimal("199.00")
    assert updated.top_placement is False

    archived = await service.archive_plan(plan.id)
    await db.commit()
    assert archived.status == PlanStatus.ARCHIVED.value

    with pytest.raises(PaymentValidationError):
        await service.create_pending_subscription(business, archived)
    with pytest.raises(NotFoundError):
        await service.archive_plan(uuid.uuid4())
