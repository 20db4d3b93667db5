"""
Email Service - transactional email via the Brevo API.
"""

import re
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

import httpx

from app.config import settings
from app.exceptions import SideEffectError

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


def _format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y").replace(" 0", " ")


def _layout(title: str, body: str) -> str:
    """Wrap a body fragment in the shared email layout."""
    return f"""
<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
  </head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1c4233; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
      <h1 style="color: white; margin: 0;">{settings.brevo_sender_name}</h1>
    </div>
    <div style="background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
      {body}
      <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
      <p style="color: #666; font-size: 12px; margin: 0;">This is an automated message, please do not reply.</p>
    </div>
  </body>
</html>
"""


class EmailService:
    """Service for sending transactional emails through Brevo."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.brevo_api_key
        self.sender = {
            "name": settings.brevo_sender_name,
            "email": settings.brevo_sender_email,
        }
        self._client = client

    async def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> bool:
        """
        Send an HTML email.

        Returns False when email is not configured.
        Raises SideEffectError when Brevo rejects or cannot be reached.
        """
        if not self.api_key:
            logger.warning(f"BREVO_API_KEY not configured, skipping email '{subject}'")
            return False

        recipients = [to] if isinstance(to, str) else list(to)
        payload = {
            "sender": self.sender,
            "to": [{"email": email} for email in recipients],
            "subject": subject,
            "htmlContent": html,
            "textContent": text or self._strip_html(html),
        }
        headers = {
            "api-key": self.api_key,
            "Content-Type": "application/json",
        }

        try:
            if self._client is not None:
                response = await self._client.post(BREVO_API_URL, json=payload, headers=headers, timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(BREVO_API_URL, json=payload, headers=headers, timeout=10.0)
        except httpx.HTTPError as e:
            raise SideEffectError(f"Failed to send email: {e}") from e

        if response.status_code not in (200, 201, 202):
            logger.error(f"Brevo API Error {response.status_code}: {response.text}")
            raise SideEffectError(f"Failed to send email: {response.status_code}")

        logger.info(f"Email '{subject}' sent to {len(recipients)} recipient(s)")
        return True

    async def send_payment_receipt(
        self,
        to: str,
        business_name: str,
        amount: Decimal,
        currency: str,
        transaction_ref: Optional[str],
        payment_id: str,
    ) -> bool:
        body = f"""
      <h2 style="color: #1c4233; margin-top: 0;">Payment received</h2>
      <p>Your payment for <strong>{business_name}</strong> was successful.</p>
      <div style="background: white; border-left: 4px solid #1c4233; padding: 20px; margin: 20px 0;">
        <p style="margin: 5px 0;"><strong>Amount:</strong> {amount} {currency}</p>
        <p style="margin: 5px 0;"><strong>Transaction:</strong> {transaction_ref or '-'}</p>
        <p style="margin: 5px 0;"><strong>Payment ID:</strong> {payment_id}</p>
      </div>
"""
        return await self.send_email(to, f"Payment Successful - {business_name}", _layout("Payment Successful", body))

    async def send_subscription_activated(
        self,
        to: str,
        business_name: str,
        plan_name: str,
        started_at: datetime,
        ends_at: datetime,
        features: List[str],
    ) -> bool:
        feature_items = "".join(f"<li>{feature}</li>" for feature in features) or "<li>Standard listing</li>"
        body = f"""
      <h2 style="color: #1c4233; margin-top: 0;">Your subscription is active</h2>
      <p>The <strong>{plan_name}</strong> plan is now active for <strong>{business_name}</strong>.</p>
      <div style="background: white; border-left: 4px solid #1c4233; padding: 20px; margin: 20px 0;">
        <p style="margin: 5px 0;"><strong>Plan:</strong> {plan_name}</p>
        <p style="margin: 5px 0;"><strong>Start Date:</strong> {_format_date(started_at)}</p>
        <p style="margin: 5px 0;"><strong>End Date:</strong> {_format_date(ends_at)}</p>
        <p style="margin: 5px 0;"><strong>Features:</strong></p>
        <ul>{feature_items}</ul>
      </div>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{settings.frontend_url}/dashboard/subscriptions"
           style="background: #1c4233; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">
          View Subscription
        </a>
      </div>
"""
        return await self.send_email(
            to,
            f"Subscription Activated - {business_name}",
            _layout("Subscription Activated", body),
        )

    async def send_subscription_expiry_reminder(
        self,
        to: str,
        business_name: str,
        plan_name: str,
        expiry_date: datetime,
        days_until_expiry: int,
    ) -> bool:
        if days_until_expiry <= 1:
            urgency_text = "Your subscription expires TOMORROW!"
            urgency_color = "#dc2626"
        elif days_until_expiry <= 3:
            urgency_text = f"Your subscription expires in {days_until_expiry} days!"
            urgency_color = "#f59e0b"
        else:
            urgency_text = f"Your subscription expires in {days_until_expiry} days"
            urgency_color = "#1c4233"

        days_text = "1 day" if days_until_expiry == 1 else f"{days_until_expiry} days"
        body = f"""
      <h2 style="color: {urgency_color}; margin-top: 0;">{urgency_text}</h2>
      <p>Your subscription for <strong>{business_name}</strong> is expiring soon.</p>
      <div style="background: white; border-left: 4px solid {urgency_color}; padding: 20px; margin: 20px 0;">
        <p style="margin: 5px 0;"><strong>Plan:</strong> {plan_name}</p>
        <p style="margin: 5px 0;"><strong>Expiry Date:</strong> {_format_date(expiry_date)}</p>
        <p style="margin: 5px 0;"><strong>Days Remaining:</strong> {days_text}</p>
      </div>
      <p>Renew to keep your business featured and your premium benefits.</p>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{settings.frontend_url}/dashboard/subscriptions"
           style="background: #1c4233; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">
          Renew Subscription
        </a>
      </div>
"""
        return await self.send_email(
            to,
            f"{urgency_text} - {business_name}",
            _layout("Subscription Expiring Soon", body),
        )

    @staticmethod
    def _strip_html(html: str) -> str:
        text = re.sub(r"<style[^>]*>.*?</style>", "", html, flags=re.S)
        text = re.sub(r"<[^>]+>", " ", text)
        return re.sub(r"\s+", " ", text).strip()


async def get_email_service() -> EmailService:
    """Dependency for the email client."""
    return EmailService()
