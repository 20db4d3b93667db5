"""
Payment state machine rules.

Payments move PENDING -> COMPLETED or PENDING -> FAILED exactly once.
The storage layer enforces this with a conditional update; these helpers
keep the same rules in one place for services and routes.
"""

from enum import Enum
from typing import Optional, Union

from app.fsm.states import PaymentStatus

TERMINAL_STATES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})


class RedirectDestination(str, Enum):
    """Browser result pages of the redirect bridge."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


def _coerce(status: Union[PaymentStatus, str]) -> PaymentStatus:
    return status if isinstance(status, PaymentStatus) else PaymentStatus(status)


def is_terminal(status: Union[PaymentStatus, str]) -> bool:
    """True for COMPLETED and FAILED."""
    return _coerce(status) in TERMINAL_STATES


def can_transition(
    current: Union[PaymentStatus, str],
    new: Union[PaymentStatus, str],
) -> bool:
    """
    Only PENDING may move, and only into a terminal state.
    PENDING -> PENDING is not a transition.
    """
    return _coerce(current) == PaymentStatus.PENDING and is_terminal(new)


def destination_for(status: Optional[Union[PaymentStatus, str]]) -> RedirectDestination:
    """Map an observed payment status to a browser result page."""
    if status is None:
        return RedirectDestination.PENDING
    status = _coerce(status)
    if status == PaymentStatus.COMPLETED:
        return RedirectDestination.SUCCESS
    if status == PaymentStatus.FAILED:
        return RedirectDestination.FAILED
    return RedirectDestination.PENDING
