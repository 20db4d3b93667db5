"""
Payment pipeline error taxonomy.

Validation and not-found errors are terminal for the caller (4xx). Gateway
and activation errors are retryable from the gateway's point of view (5xx
on callback).
Side-effect errors are logged and swallowed by the notifier.
"""

from typing import Optional


class PaymentPipelineError(Exception):
    """Base class for payment pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PaymentValidationError(PaymentPipelineError):
    """Malformed request data: correlation id, transaction reference, amount or plan fields."""


class NotFoundError(PaymentPipelineError):
    """Unknown payment, business, plan, subscription or user."""


class GatewayError(PaymentPipelineError):
    """PayTabs unreachable, timed out, or returned a failure envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SideEffectError(PaymentPipelineError):
    """Notification or email delivery failed."""


class ActivationError(PaymentPipelineError):
    """A completed payment could not be applied to its subscription. Retryable."""
