"""
Payment Service - payment ledger with a guarded status transition.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, PaymentValidationError
from app.fsm.machine import can_transition, is_terminal
from app.fsm.states import PaymentStatus, PaymentMethod
from app.models.payment import Payment

logger = logging.getLogger(__name__)


@dataclass
class PaymentTransition:
    """Outcome of PaymentService.transition."""

    payment: Payment
    previous_status: PaymentStatus
    applied: bool

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus(self.payment.status)


class PaymentService:
    """Owns payment records: creation, guarded transition, queries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_payment(
        self,
        user_id: uuid.UUID,
        business_id: uuid.UUID,
        amount: Decimal,
        currency: str,
        description: Optional[str] = None,
    ) -> Payment:
        """Create a PENDING payment."""
        amount = Decimal(str(amount))
        if amount <= 0:
            raise PaymentValidationError("Invalid payment amount")

        payment = Payment(
            user_id=user_id,
            business_id=business_id,
            amount=amount,
            currency=currency.upper(),
            status=PaymentStatus.PENDING.value,
            payment_method=PaymentMethod.PAYTABS.value,
            description=description,
        )
        self.db.add(payment)
        await self.db.flush()

        logger.info(f"Payment {payment.id} created: {amount} {payment.currency}", extra={"payment_id": payment.id})
        return payment

    async def attach_transaction_ref(self, payment: Payment, tran_ref: str) -> Payment:
        """Record the gateway reference on a payment that is still PENDING."""
        if is_terminal(payment.status):
            return payment
        payment.transaction_id = tran_ref
        await self.db.flush()
        return payment

    async def transition(
        self,
        payment_id: uuid.UUID,
        new_status: PaymentStatus,
        tran_ref: Optional[str] = None,
    ) -> PaymentTransition:
        """
        Move a PENDING payment into a terminal state.

        The write is a conditional UPDATE on status = PENDING, so when the
        callback and the redirect fallback race only one of them gets
        `applied=True`. Calls on an already terminal payment return it
        unchanged.
        """
        payment = await self.get_payment(payment_id)
        if not payment:
            raise NotFoundError("Payment not found")

        previous = PaymentStatus(payment.status)

        if not is_terminal(new_status):
            # Still undecided, only remember the reference
            if tran_ref and not payment.transaction_id:
                await self.attach_transaction_ref(payment, tran_ref)
            return PaymentTransition(payment=payment, previous_status=previous, applied=False)

        if not can_transition(previous, new_status):
            logger.info(
                f"Payment {payment_id} already {previous.value}, ignoring {new_status.value}",
                extra={"payment_id": payment_id},
            )
            return PaymentTransition(payment=payment, previous_status=previous, applied=False)

        values = {
            "status": new_status.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if tran_ref:
            values["transaction_id"] = tran_ref

        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1

        # Pick up whichever writer won
        await self.db.refresh(payment)

        if applied:
            logger.info(
                f"Payment {payment_id}: {previous.value} -> {new_status.value}",
                extra={"payment_id": payment_id, "transaction_ref": tran_ref},
            )
        else:
            logger.info(
                f"Payment {payment_id} transition lost to concurrent writer, now {payment.status}",
                extra={"payment_id": payment_id},
            )

        return PaymentTransition(payment=payment, previous_status=previous, applied=applied)

    async def get_payment(self, payment_id: uuid.UUID, refresh: bool = False) -> Optional[Payment]:
        """Get payment by ID. `refresh` bypasses the session identity map."""
        stmt = select(Payment).where(Payment.id == payment_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: uuid.UUID) -> List[Payment]:
        """All payments of a user, newest first."""
        result = await self.db.execute(
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(desc(Payment.created_at))
        )
        return list(result.scalars().all())

    async def list_by_business(self, business_id: uuid.UUID) -> List[Payment]:
        """All payments for a business, newest first."""
        result = await self.db.execute(
            select(Payment)
            .where(Payment.business_id == business_id)
            .order_by(desc(Payment.created_at))
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Payment], int]:
        """
        Paginated admin listing.

        start_date counts from the start of that day, end_date up to the
        end of that day (both UTC).
        """
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = []
        if status:
            conditions.append(Payment.status == status.value)
        if start_date:
            conditions.append(
                Payment.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc)
            )
        if end_date:
            conditions.append(
                Payment.created_at <= datetime.combine(end_date, time.max, tzinfo=timezone.utc)
            )

        total_result = await self.db.execute(
            select(func.count()).select_from(Payment).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(Payment)
            .where(*conditions)
            .order_by(desc(Payment.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def mark_checked(self, payment_id: uuid.UUID) -> bool:
        """Bump updated_at on a payment that is still PENDING."""
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_stale_pending(self, older_than: datetime, limit: int = 50) -> List[Payment]:
        """PENDING payments with a gateway reference not touched since `older_than`."""
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.transaction_id.is_not(None),
                Payment.updated_at < older_than,
            )
            .order_by(Payment.updated_at)
            .limit(limit)
        )
        return list(result.scalars().all())
