"""
PayTabs Service - hosted payment page creation and transaction verification.
"""

import logging
from decimal import Decimal
from typing import Optional, Dict, Any

import httpx

from app.config import settings
from app.exceptions import GatewayError
from app.fsm.states import PaymentStatus

logger = logging.getLogger(__name__)

# PayTabs response_status codes
COMPLETED_CODES = frozenset({"A", "S"})          # Approved, Success
FAILED_CODES = frozenset({"D", "E", "V", "C"})   # Declined, Error, Voided, Cancelled

MOBILE_KEY_HINT = (
    "PayTabs authentication error: a Mobile authentication key is being used "
    "for a Web integration. Set PAYTABS_SERVER_KEY to a Server/Web key from the "
    "PayTabs merchant dashboard."
)


class PayTabsService:
    """Client for the PayTabs hosted payment page API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.server_key = settings.paytabs_server_key
        self.profile_id = settings.paytabs_profile_id
        self.api_url = settings.paytabs_api_url.rstrip("/")
        self.timeout = settings.paytabs_timeout_seconds
        self._client = client

        self.headers = {
            "authorization": self.server_key,
            "Content-Type": "application/json",
        }

    async def create_payment_page(
        self,
        amount: Decimal,
        currency: str,
        cart_id: str,
        description: str,
        customer: Dict[str, Any],
        callback_url: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a hosted payment page.

        Args:
            amount: Cart amount
            currency: ISO currency code
            cart_id: Our payment id (correlation id)
            description: Cart description shown on the page
            customer: PayTabs customer_details block
            callback_url: Server-to-server callback URL
            return_url: Browser return URL

        Returns the PayTabs response containing `redirect_url` and `tran_ref`.
        Raises GatewayError on any failure; the caller marks the payment FAILED.
        """
        if not self.server_key or not self.server_key.strip():
            raise GatewayError(
                "PayTabs server key is not configured. Set PAYTABS_SERVER_KEY."
            )

        if "mobile" in self.server_key.lower():
            logger.warning("PayTabs server key looks like a Mobile key; Web integrations need a Server key")

        payload = {
            "profile_id": self.profile_id,
            "tran_type": "sale",
            "tran_class": "ecom",
            "cart_id": cart_id,
            "cart_description": description,
            "cart_currency": currency,
            "cart_amount": float(amount),
            "callback": callback_url or settings.callback_url,
            "return": return_url or settings.return_url,
            "customer_details": customer,
            "hide_shipping": True,
        }

        data = await self._post("/payment/request", payload, "Failed to create PayTabs payment page")

        if not data.get("redirect_url"):
            logger.error(f"PayTabs payment request without redirect_url: {data}")
            raise GatewayError("Invalid response from PayTabs API")

        logger.info(
            f"PayTabs payment page created for cart {cart_id}: {data.get('tran_ref')}",
            extra={"payment_id": cart_id, "transaction_ref": data.get("tran_ref")},
        )
        return data

    async def verify_payment(self, tran_ref: str) -> Dict[str, Any]:
        """
        Query PayTabs for the authoritative state of a transaction.
        Safe to call any number of times.
        """
        payload = {
            "profile_id": self.profile_id,
            "tran_ref": tran_ref,
        }
        return await self._post("/payment/query", payload, "Failed to verify PayTabs payment")

    @staticmethod
    def parse_payment_status(response_status: Optional[str]) -> PaymentStatus:
        """
        Map a PayTabs response_status code to a payment status.
        Anything not explicitly approved or rejected stays PENDING.
        """
        code = (response_status or "").strip().upper()
        if code in COMPLETED_CODES:
            return PaymentStatus.COMPLETED
        if code in FAILED_CODES:
            return PaymentStatus.FAILED
        # H (on hold), P (pending) and unknown codes
        return PaymentStatus.PENDING

    @staticmethod
    def extract_response_status(result: Optional[Dict[str, Any]]) -> Optional[str]:
        """Read payment_result.response_status from a PayTabs payload."""
        if not isinstance(result, dict):
            return None
        payment_result = result.get("payment_result") or {}
        if not isinstance(payment_result, dict):
            return None
        return payment_result.get("response_status")

    async def _post(self, path: str, payload: Dict[str, Any], failure_message: str) -> Dict[str, Any]:
        """POST to PayTabs and return the decoded JSON body."""
        url = f"{self.api_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=payload, headers=self.headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.error(f"PayTabs timeout on {path}: {e}")
            raise GatewayError(f"{failure_message}: request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"PayTabs transport error on {path}: {e}")
            raise GatewayError(f"{failure_message}: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code not in (200, 201):
            logger.error(f"PayTabs API Error {response.status_code} on {path}: {response.text}")
            raise GatewayError(
                self._error_message(data, response.text, failure_message),
                status_code=response.status_code,
            )

        if not isinstance(data, dict):
            raise GatewayError(f"{failure_message}: unexpected response body")

        return data

    @staticmethod
    def _error_message(data: Any, raw_text: str, default: str) -> str:
        """Pick the most useful upstream error text."""
        message = default
        if isinstance(data, dict):
            message = data.get("message") or data.get("error") or default
        elif raw_text:
            message = raw_text

        if "application/octet-stream" in str(message) or "application/octet-stream" in (raw_text or ""):
            return MOBILE_KEY_HINT
        return str(message)


async def get_paytabs_service() -> PayTabsService:
    """Dependency for the PayTabs client."""
    return PayTabsService()
