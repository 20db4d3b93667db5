"""
Tests for the payment state machine.
"""

import pytest
from app.fsm.machine import (
    RedirectDestination,
    can_transition,
    destination_for,
    is_terminal,
)
from app.fsm.states import (
    NotificationType,
    PaymentStatus,
    SubscriptionStatus,
)


class TestPaymentStatus:
    """Tests for PaymentStatus enum."""

    def test_all_states_defined(self):
        assert {s.value for s in PaymentStatus} == {"PENDING", "COMPLETED", "FAILED"}

    def test_terminal_states(self):
        assert is_terminal(PaymentStatus.COMPLETED)
        assert is_terminal("FAILED")
        assert not is_terminal(PaymentStatus.PENDING)


class TestTransitions:
    """Only PENDING moves, and only into a terminal state."""

    @pytest.mark.parametrize("new", [PaymentStatus.COMPLETED, PaymentStatus.FAILED])
    def test_pending_to_terminal(self, new):
        assert can_transition(PaymentStatus.PENDING, new)

    def test_pending_to_pending_is_not_a_transition(self):
        assert not can_transition(PaymentStatus.PENDING, PaymentStatus.PENDING)

    @pytest.mark.parametrize("current", [PaymentStatus.COMPLETED, PaymentStatus.FAILED])
    @pytest.mark.parametrize("new", list(PaymentStatus))
    def test_terminal_states_never_move(self, current, new):
        assert not can_transition(current, new)


class TestRedirectDestination:
    """Tests for the browser result page mapping."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            (PaymentStatus.COMPLETED, RedirectDestination.SUCCESS),
            (PaymentStatus.FAILED, RedirectDestination.FAILED),
            (PaymentStatus.PENDING, RedirectDestination.PENDING),
            ("COMPLETED", RedirectDestination.SUCCESS),
            (None, RedirectDestination.PENDING),
        ],
    )
    def test_destination_for(self, status, expected):
        assert destination_for(status) == expected

    def test_page_names(self):
        assert [d.value for d in RedirectDestination] == ["success", "failed", "pending"]


class TestSubscriptionStatus:

    def test_all_states_defined(self):
        expected = ["PENDING", "ACTIVE", "FAILED", "CANCELLED", "EXPIRED"]
        assert set(expected) == {s.value for s in SubscriptionStatus}


class TestNotificationType:

    def test_titles(self):
        assert NotificationType.PAYMENT_SUCCESS.default_title == "Payment Successful"
        assert NotificationType.SUBSCRIPTION_EXPIRED.default_title == "Subscription Expired"
        assert all(t.default_title for t in NotificationType)
