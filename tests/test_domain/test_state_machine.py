"""Tests for the PaymentStateMachine domain guard.

These tests verify that:
    1. All valid transitions are allowed.
    2. All invalid transitions are blocked.
    3. Unknown statuses are refused at construction.
    4. COMPLETED and REFUNDED are final; EXPIRED is not.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from x402_escrow.domain.state_machine import PaymentStateMachine


class TestHappyPath:
    """Deposit then release: NONE -> DEPOSITED -> COMPLETED."""

    def test_full_lifecycle(self) -> None:
        sm = PaymentStateMachine("NONE")
        assert sm.status == "NONE"

        sm.deposit()
        assert sm.status == "DEPOSITED"

        sm.release()
        assert sm.status == "COMPLETED"

    def test_default_status_is_none(self) -> None:
        assert PaymentStateMachine().status == "NONE"


class TestRefundPaths:
    def test_refund_from_deposited(self) -> None:
        sm = PaymentStateMachine("DEPOSITED")
        sm.refund()
        assert sm.status == "REFUNDED"

    def test_expire_then_refund(self) -> None:
        sm = PaymentStateMachine("DEPOSITED")
        sm.expire()
        assert sm.status == "EXPIRED"

        sm.refund()
        assert sm.status == "REFUNDED"

    def test_auto_refund_from_deposited(self) -> None:
        sm = PaymentStateMachine("DEPOSITED")
        sm.auto_refund()
        assert sm.status == "REFUNDED"


class TestIllegalTransitions:
    """Verify that illegal transitions raise TransitionNotAllowed."""

    def test_none_cannot_release(self) -> None:
        sm = PaymentStateMachine("NONE")
        with pytest.raises(TransitionNotAllowed):
            sm.release()

    def test_none_cannot_refund(self) -> None:
        sm = PaymentStateMachine("NONE")
        with pytest.raises(TransitionNotAllowed):
            sm.refund()

    def test_deposited_cannot_deposit_again(self) -> None:
        sm = PaymentStateMachine("DEPOSITED")
        with pytest.raises(TransitionNotAllowed):
            sm.deposit()

    def test_completed_cannot_refund(self) -> None:
        sm = PaymentStateMachine("COMPLETED")
        with pytest.raises(TransitionNotAllowed):
            sm.refund()

    def test_refunded_cannot_release(self) -> None:
        sm = PaymentStateMachine("REFUNDED")
        with pytest.raises(TransitionNotAllowed):
            sm.release()

    def test_expired_cannot_release(self) -> None:
        sm = PaymentStateMachine("EXPIRED")
        with pytest.raises(TransitionNotAllowed):
            sm.release()

    def test_expired_cannot_auto_refund(self) -> None:
        sm = PaymentStateMachine("EXPIRED")
        with pytest.raises(TransitionNotAllowed):
            sm.auto_refund()

    def test_completed_is_final(self) -> None:
        sm = PaymentStateMachine("COMPLETED")
        assert sm.get_allowed_events() == []

    def test_refunded_is_final(self) -> None:
        sm = PaymentStateMachine("REFUNDED")
        assert sm.get_allowed_events() == []


class TestAllowedEvents:
    """Test the get_allowed_events helper."""

    def test_none_allowed(self) -> None:
        sm = PaymentStateMachine("NONE")
        assert sm.get_allowed_events() == ["deposit"]

    def test_deposited_allowed(self) -> None:
        sm = PaymentStateMachine("DEPOSITED")
        allowed = sm.get_allowed_events()
        assert set(allowed) == {"release", "refund", "expire", "auto_refund"}

    def test_expired_allowed(self) -> None:
        sm = PaymentStateMachine("EXPIRED")
        assert sm.get_allowed_events() == ["refund"]


class TestConstruction:
    def test_status_reflects_start_value(self) -> None:
        assert PaymentStateMachine("EXPIRED").status == "EXPIRED"
        assert PaymentStateMachine().status == "NONE"

    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            PaymentStateMachine("INVALID_STATUS")
