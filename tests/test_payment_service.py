"""
Tests for PaymentService.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.exceptions import NotFoundError, PaymentValidationError
from app.fsm.states import PaymentStatus
from app.models.payment import Payment
from app.services.payment_service import PaymentService


@pytest.mark.asyncio
async def test_create_payment(db, user, business):
    service = PaymentService(db)

    payment = await service.create_payment(user.id, business.id, Decimal("150.00"), "sar", "Listing boost")
    await db.commit()

    assert payment.id is not None
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.currency == "SAR"
    assert payment.payment_method == "PAYTABS"
    assert payment.transaction_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
async def test_create_payment_rejects_non_positive_amount(db, user, business, amount):
    with pytest.raises(PaymentValidationError):
        await PaymentService(db).create_payment(user.id, business.id, amount, "SAR")


@pytest.mark.asyncio
async def test_transition_applies_once(db, user, business):
    service = PaymentService(db)
    payment = await service.create_payment(user.id, business.id, Decimal("100"), "SAR")
    await db.commit()

    first = await service.transition(payment.id, PaymentStatus.COMPLETED, "TST1")
    second = await service.transition(payment.id, PaymentStatus.FAILED, "TST1")

    assert first.applied is True
    assert first.previous_status == PaymentStatus.PENDING
    assert first.status == PaymentStatus.COMPLETED
    assert second.applied is False
    assert second.status == PaymentStatus.COMPLETED
    assert payment.transaction_id == "TST1"


@pytest.mark.asyncio
async def test_transition_loses_to_concurrent_writer(db, user, business):
    """A stale in-session PENDING copy cannot overwrite a row another writer already settled."""
    service = PaymentService(db)
    payment = await service.create_payment(user.id, business.id, Decimal("100"), "SAR")
    await db.commit()

    # Another worker completes the payment behind this session's back
    await db.execute(
        update(Payment)
        .where(Payment.id == payment.id)
        .values(status=PaymentStatus.COMPLETED.value)
        .execution_options(synchronize_session=False)
    )
    assert payment.status == PaymentStatus.PENDING.value

    result = await service.transition(payment.id, PaymentStatus.FAILED, "TST1")

    assert result.applied is False
    assert result.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_transition_to_pending_only_records_reference(db, user, business):
    service = PaymentService(db)
    payment = await service.create_payment(user.id, business.id, Decimal("100"), "SAR")
    await db.commit()

    result = await service.transition(payment.id, PaymentStatus.PENDING, "TST9")

    assert result.applied is False
    assert result.status == PaymentStatus.PENDING
    assert payment.transaction_id == "TST9"


@pytest.mark.asyncio
async def test_transition_unknown_payment(db):
    with pytest.raises(NotFoundError):
        await PaymentService(db).transition(uuid.uuid4(), PaymentStatus.COMPLETED)


@pytest.mark.asyncio
async def test_attach_transaction_ref_ignored_when_terminal(db, user, business):
    service = PaymentService(db)
    payment = await service.create_payment(user.id, business.id, Decimal("100"), "SAR")
    await service.transition(payment.id, PaymentStatus.FAILED)

    await service.attach_transaction_ref(payment, "TST-LATE")

    assert payment.transaction_id is None


@pytest.mark.asyncio
async def test_mark_checked_moves_payment_out_of_stale_window(db, user, business):
    service = PaymentService(db)
    old = datetime.now(timezone.utc) - timedelta(hours=1)
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=10)
    payment = Payment(
        user_id=user.id, business_id=business.id, amount=Decimal("50"),
        transaction_id="TST-OLD", updated_at=old,
    )
    db.add(payment)
    await db.commit()
    assert [p.id for p in await service.find_stale_pending(cutoff)] == [payment.id]

    assert await service.mark_checked(payment.id) is True
    await db.commit()

    assert await service.find_stale_pending(cutoff) == []


@pytest.mark.asyncio
async def test_mark_checked_ignores_terminal_payment(db, user, business):
    service = PaymentService(db)
    payment = await service.create_payment(user.id, business.id, Decimal("100"), "SAR")
    await service.transition(payment.id, PaymentStatus.COMPLETED, "TST-DONE")

    assert await service.mark_checked(payment.id) is False


@pytest.mark.asyncio
async def test_list_all_filters_and_paginates(db, user, business):
    service = PaymentService(db)
    now = datetime.now(timezone.utc)
    for i in range(3):
        db.add(Payment(
            user_id=user.id,
            business_id=business.id,
            amount=Decimal("10") + i,
            status=PaymentStatus.COMPLETED.value,
            created_at=now - timedelta(minutes=i),
        ))
    db.add(Payment(
        user_id=user.id,
        business_id=business.id,
        amount=Decimal("99"),
        status=PaymentStatus.FAILED.value,
        created_at=now - timedelta(days=10),
    ))
    await db.commit()

    completed, total = await service.list_all(page=1, limit=2, status=PaymentStatus.COMPLETED)
    assert total == 3
    assert len(completed) == 2
    assert completed[0].amount == Decimal("10")

    page_two, _ = await service.list_all(page=2, limit=2, status=PaymentStatus.COMPLETED)
    assert len(page_two) == 1

    recent, total_recent = await service.list_all(start_date=(now - timedelta(days=1)).date())
    assert total_recent == 3
    assert all(p.status == PaymentStatus.COMPLETED.value for p in recent)

    old, total_old = await service.list_all(end_date=(now - timedelta(days=5)).date())
    assert total_old == 1
    assert old[0].status == PaymentStatus.FAILED.value


@pytest.mark.asyncio
async def test_list_by_user_and_business(db, user, business):
    service = PaymentService(db)
    await service.create_payment(user.id, business.id, Decimal("5"), "SAR")
    await service.create_payment(user.id, business.id, Decimal("6"), "SAR")
    await db.commit()

    assert len(await service.list_by_user(user.id)) == 2
    assert len(await service.list_by_business(business.id)) == 2
    assert await service.list_by_user(uuid.uuid4()) == []


@pytest.mark.asyncio
async def test_find_stale_pending(db, user, business):
    service = PaymentService(db)
    old = datetime.now(timezone.utc) - timedelta(hours=1)

    stale = Payment(user_id=user.id, business_id=business.id, amount=Decimal("10"),
                    transaction_id="TST-OLD", updated_at=old)
    no_ref = Payment(user_id=user.id, business_id=business.id, amount=Decimal("10"), updated_at=old)
    fresh = Payment(user_id=user.id, business_id=business.id, amount=Decimal("10"), transaction_id="TST-NEW")
    db.add_all([stale, no_ref, fresh])
    await db.commit()

    found = await service.find_stale_pending(datetime.now(timezone.utc) - timedelta(minutes=10))

    assert [p.id for p in found] == [stale.id]
