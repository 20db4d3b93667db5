"""
Reconciliation Service - applies PayTabs status to payments and subscriptions.

Three channels feed it: the server-to-server callback, the browser redirect
fallback, and the periodic sweep of stale PENDING payments. All of them end
in apply_status, which relies on the ledger's conditional update so that
exactly one caller performs the transition and its side effects.
"""

import asyncio
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import GatewayError, NotFoundError, PaymentValidationError
from app.fsm.states import PaymentStatus
from app.services.payment_notifier import PaymentNotifier
from app.services.payment_service import PaymentService
from app.services.paytabs_service import PayTabsService
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationOutcome:
    """Plain snapshot of where a payment ended up."""

    payment_id: uuid.UUID
    status: PaymentStatus
    transaction_ref: Optional[str]
    applied: bool = False
    duplicate: bool = False
    subscription_activated: bool = False


def parse_payment_id(value: Optional[str]) -> uuid.UUID:
    """Parse a cart_id / paymentId into a payment UUID."""
    if not value:
        raise PaymentValidationError("Missing payment id")
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise PaymentValidationError(f"Invalid payment id: {value}") from e


class ReconciliationService:
    """Single entry point for gateway-driven payment transitions."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PayTabsService,
        notifier: PaymentNotifier,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.payments = PaymentService(db)
        self.subscriptions = SubscriptionService(db)

    async def apply_status(
        self,
        payment_id: uuid.UUID,
        status: PaymentStatus,
        tran_ref: Optional[str],
    ) -> ReconciliationOutcome:
        """
        Transition the payment and, if this call won the transition, run the
        subscription step and side effects.

        The payment transition and the subscription change are committed
        together before any notification or email is attempted. If the
        subscription step raises, both are rolled back.
        """
        transition = await self.payments.transition(payment_id, status, tran_ref)
        payment = transition.payment

        outcome = ReconciliationOutcome(
            payment_id=payment.id,
            status=PaymentStatus(payment.status),
            transaction_ref=payment.transaction_id,
            applied=transition.applied,
        )

        if not transition.applied:
            return outcome

        activation = None
        try:
            if outcome.status == PaymentStatus.COMPLETED:
                activation = await self.subscriptions.activate_for_payment(payment)
                outcome.subscription_activated = activation is not None
            else:
                await self.subscriptions.fail_for_payment(payment)
        except Exception:
            # Undo the uncommitted payment transition as well
            await self.db.rollback()
            raise

        await self.db.commit()

        if outcome.status == PaymentStatus.COMPLETED:
            await self.notifier.payment_completed(payment, activation)
        else:
            await self.notifier.payment_failed(payment)

        return outcome

    async def process_callback(
        self,
        tran_ref: Optional[str],
        cart_id: Optional[str],
        payload_status: Optional[str] = None,
    ) -> ReconciliationOutcome:
        """
        Handle a PayTabs server callback.

        1. Reject missing tran_ref / cart_id
        2. Re-verify with PayTabs; the payload status is only advisory
        3. Load the payment (NotFoundError if absent)
        4. Already COMPLETED -> acknowledge without reprocessing
        5. Apply the verified status

        GatewayError propagates so the route answers 5xx and PayTabs retries.
        """
        if not tran_ref or not cart_id:
            raise PaymentValidationError("Invalid callback data: missing tran_ref or cart_id")

        payment_id = parse_payment_id(cart_id)

        status = await self._verified_status(tran_ref, cart_id)

        if payload_status is not None:
            advisory = PayTabsService.parse_payment_status(payload_status)
            if advisory != status:
                logger.warning(
                    f"Callback payload status {advisory.value} differs from verified {status.value}",
                    extra={"payment_id": payment_id, "transaction_ref": tran_ref},
                )

        payment = await self.payments.get_payment(payment_id)
        if not payment:
            logger.error(f"Payment not found for cart_id: {cart_id}", extra={"transaction_ref": tran_ref})
            raise NotFoundError("Payment not found")

        if payment.status == PaymentStatus.COMPLETED.value:
            logger.info(f"Duplicate callback for completed payment {payment_id}", extra={"payment_id": payment_id})
            return ReconciliationOutcome(
                payment_id=payment.id,
                status=PaymentStatus.COMPLETED,
                transaction_ref=payment.transaction_id,
                duplicate=True,
            )

        return await self.apply_status(payment_id, status, tran_ref)

    async def settle_for_redirect(
        self,
        payment_id: uuid.UUID,
        tran_ref: Optional[str] = None,
        max_attempts: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ) -> ReconciliationOutcome:
        """
        Wait briefly for the callback to land, then verify directly.

        Polls the ledger up to `max_attempts` times, `interval_seconds`
        apart. If the payment is still PENDING afterwards, performs one
        verify + apply. Gateway errors leave the payment PENDING.
        """
        max_attempts = settings.redirect_poll_attempts if max_attempts is None else max_attempts
        interval_seconds = (
            settings.redirect_poll_interval_seconds if interval_seconds is None else interval_seconds
        )

        payment = await self.payments.get_payment(payment_id)
        if not payment:
            raise NotFoundError("Payment not found")

        tran_ref = tran_ref or payment.transaction_id
        status = PaymentStatus(payment.status)

        if status != PaymentStatus.PENDING or not tran_ref:
            return ReconciliationOutcome(payment_id=payment_id, status=status, transaction_ref=tran_ref)

        for attempt in range(1, max_attempts + 1):
            await asyncio.sleep(interval_seconds)
            payment = await self.payments.get_payment(payment_id, refresh=True)
            status = PaymentStatus(payment.status)
            if status != PaymentStatus.PENDING:
                logger.info(
                    f"Callback landed for payment {payment_id} after {attempt} poll(s): {status.value}",
                    extra={"payment_id": payment_id},
                )
                return ReconciliationOutcome(payment_id=payment_id, status=status, transaction_ref=tran_ref)

        logger.info(
            f"Payment {payment_id} still PENDING after {max_attempts} polls, verifying directly",
            extra={"payment_id": payment_id, "transaction_ref": tran_ref},
        )

        try:
            verified = await self._verified_status(tran_ref, str(payment_id))
            return await self.apply_status(payment_id, verified, tran_ref)
        except (GatewayError, PaymentValidationError) as e:
            logger.warning(
                f"Redirect verification failed for payment {payment_id}: {e}",
                extra={"payment_id": payment_id, "transaction_ref": tran_ref},
            )
            return ReconciliationOutcome(
                payment_id=payment_id,
                status=PaymentStatus.PENDING,
                transaction_ref=tran_ref,
            )

    async def reconcile_stale_pending(
        self,
        older_than_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, int]:
        """
        Re-verify PENDING payments whose callback never arrived.

        A payment that is still PENDING after its check, or whose check
        failed, has its updated_at bumped so the next run moves on to the
        next-oldest payments. Returns counts per resulting status plus errors.
        """
        older_than_minutes = (
            settings.pending_reconcile_after_minutes if older_than_minutes is None else older_than_minutes
        )
        limit = settings.pending_reconcile_batch_size if limit is None else limit
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)

        stale = await self.payments.find_stale_pending(cutoff, limit=limit)
        targets = [(payment.id, payment.transaction_id) for payment in stale]

        counts = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "errors": 0}
        for payment_id, tran_ref in targets:
            counts["checked"] += 1
            try:
                verified = await self._verified_status(tran_ref, str(payment_id))
                outcome = await self.apply_status(payment_id, verified, tran_ref)
            except (GatewayError, PaymentValidationError) as e:
                counts["errors"] += 1
                logger.warning(
                    f"Sweep could not verify payment {payment_id}: {e}",
                    extra={"payment_id": payment_id, "transaction_ref": tran_ref},
                )
                await self._defer(payment_id)
                continue
            except Exception as e:
                counts["errors"] += 1
                logger.error(
                    f"Sweep failed on payment {payment_id}: {e}",
                    exc_info=True,
                    extra={"payment_id": payment_id, "transaction_ref": tran_ref},
                )
                await self.db.rollback()
                await self._defer(payment_id)
                continue

            counts[outcome.status.value.lower()] += 1
            if outcome.status == PaymentStatus.PENDING:
                await self._defer(payment_id)

        if targets:
            logger.info(f"Pending payment sweep: {counts}")
        return counts

    async def _defer(self, payment_id: uuid.UUID) -> None:
        """Push a still-PENDING payment to the back of the sweep queue."""
        try:
            await self.payments.mark_checked(payment_id)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Could not defer payment {payment_id}: {e}", extra={"payment_id": payment_id})

    async def _verified_status(self, tran_ref: str, cart_id: str) -> PaymentStatus:
        """Ask PayTabs for the transaction state and check it belongs to this cart."""
        verification = await self.gateway.verify_payment(tran_ref)

        verified_cart = verification.get("cart_id")
        if verified_cart and str(verified_cart) != str(cart_id):
            raise PaymentValidationError(
                f"Transaction {tran_ref} belongs to cart {verified_cart}, not {cart_id}"
            )

        return PayTabsService.parse_payment_status(
            PayTabsService.extract_response_status(verification)
        )
