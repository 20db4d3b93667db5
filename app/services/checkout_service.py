"""
Checkout Service - creates payments and hands them off to the PayTabs hosted page.
"""

import uuid
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import GatewayError, NotFoundError, PaymentValidationError
from app.fsm.states import PaymentStatus
from app.models.business import Business
from app.models.payment import Payment
from app.models.user import User
from app.services.payment_service import PaymentService
from app.services.paytabs_service import PayTabsService
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_PHONE = "966500000000"


@dataclass
class CheckoutResult:
    """Where to send the browser to pay."""

    payment_id: uuid.UUID
    redirect_url: str
    transaction_ref: Optional[str]
    subscription_id: Optional[uuid.UUID] = None


def parse_amount(value: Any) -> Decimal:
    """Parse a positive amount."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise PaymentValidationError("Invalid payment amount") from e
    if not amount.is_finite() or amount <= 0:
        raise PaymentValidationError("Invalid payment amount")
    return amount.quantize(Decimal("0.01"))


def build_customer_details(user: User) -> Dict[str, str]:
    """PayTabs customer_details block; address fields are not collected."""
    return {
        "name": user.full_name,
        "email": user.email,
        "phone": user.phone or DEFAULT_CUSTOMER_PHONE,
        "street1": "N/A",
        "city": "N/A",
        "state": "N/A",
        "country": "SA",
        "zip": "00000",
    }


class CheckoutService:
    """Starts payments and subscription purchases."""

    def __init__(self, db: AsyncSession, gateway: PayTabsService):
        self.db = db
        self.gateway = gateway
        self.payments = PaymentService(db)
        self.subscriptions = SubscriptionService(db)

    async def start_payment(
        self,
        user_id: uuid.UUID,
        business_id: uuid.UUID,
        amount: Any,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a PENDING payment and a hosted payment page for it.

        If PayTabs refuses, the payment is marked FAILED and the GatewayError
        is re-raised. The user has to start checkout again.
        """
        amount = parse_amount(amount)
        user, business = await self._load_user_and_business(user_id, business_id)

        payment = await self.payments.create_payment(
            user_id=user.id,
            business_id=business.id,
            amount=amount,
            currency=currency or settings.paytabs_currency,
            description=description or f"Payment for {business.name}",
        )
        return await self._hand_off(payment, user, return_url)

    async def start_subscription_purchase(
        self,
        user_id: uuid.UUID,
        business_id: uuid.UUID,
        plan_id: uuid.UUID,
        return_url: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a PENDING subscription plus its payment.
        The subscription is activated later by the completed payment.
        """
        user, business = await self._load_user_and_business(user_id, business_id)

        plan = await self.subscriptions.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Subscription plan not found")

        subscription = await self.subscriptions.create_pending_subscription(business, plan)
        subscription_id = subscription.id

        payment = await self.payments.create_payment(
            user_id=user.id,
            business_id=business.id,
            amount=subscription.total_amount,
            currency=plan.currency,
            description=f"{plan.name} subscription for {business.name}",
        )

        try:
            result = await self._hand_off(payment, user, return_url)
        except GatewayError:
            await self.subscriptions.mark_failed(subscription)
            await self.db.commit()
            raise

        result.subscription_id = subscription_id
        return result

    async def _hand_off(self, payment: Payment, user: User, return_url: Optional[str]) -> CheckoutResult:
        """Commit the PENDING payment, then ask PayTabs for a payment page."""
        payment_id = payment.id
        amount = payment.amount
        currency = payment.currency
        description = payment.description
        customer = build_customer_details(user)

        await self.db.commit()

        try:
            response = await self.gateway.create_payment_page(
                amount=amount,
                currency=currency,
                cart_id=str(payment_id),
                description=description,
                customer=customer,
                callback_url=settings.callback_url,
                return_url=return_url or settings.return_url,
            )
        except GatewayError as e:
            logger.error(f"PayTabs error for payment {payment_id}: {e}", extra={"payment_id": payment_id})
            await self.payments.transition(payment_id, PaymentStatus.FAILED)
            await self.db.commit()
            raise

        tran_ref = response.get("tran_ref")
        if tran_ref:
            await self.payments.attach_transaction_ref(payment, tran_ref)
            await self.db.commit()

        return CheckoutResult(
            payment_id=payment_id,
            redirect_url=response["redirect_url"],
            transaction_ref=tran_ref,
        )

    async def _load_user_and_business(self, user_id: uuid.UUID, business_id: uuid.UUID):
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        business = await self.db.get(Business, business_id)
        if not business:
            raise NotFoundError("Business not found")

        return user, business
