"""Tests for the in-memory repositories and their snapshot/restore contract."""

from __future__ import annotations

import pytest

from x402_escrow.domain.enums import PaymentStatus
from x402_escrow.domain.models import ReleaseDecision, TaskPayment
from x402_escrow.infrastructure.repositories import (
    ConsumedNonceRepository,
    CoordinatorRepository,
    PaymentRepository,
    ReleaseDecisionRepository,
    SequentialNonceRepository,
)

CLIENT = "0x" + "11" * 20


class TestPaymentRepository:
    def test_add_and_update(self) -> None:
        repo = PaymentRepository()
        repo.add(TaskPayment(task_id="t1", amount=5, status=PaymentStatus.DEPOSITED))

        repo.update(repo.get("t1").with_status(PaymentStatus.COMPLETED))

        assert repo.get("t1").status is PaymentStatus.COMPLETED
        assert repo.exists("t1")
        assert repo.get("t2") is None

    def test_add_twice_fails(self) -> None:
        repo = PaymentRepository()
        repo.add(TaskPayment(task_id="t1"))
        with pytest.raises(KeyError):
            repo.add(TaskPayment(task_id="t1"))

    def test_restore_discards_later_changes(self) -> None:
        repo = PaymentRepository()
        repo.add(TaskPayment(task_id="t1", status=PaymentStatus.DEPOSITED))
        snapshot = repo.snapshot()

        repo.update(repo.get("t1").with_status(PaymentStatus.REFUNDED))
        repo.add(TaskPayment(task_id="t2"))
        repo.restore(snapshot)

        assert repo.get("t1").status is PaymentStatus.DEPOSITED
        assert not repo.exists("t2")
        assert len(repo) == 1


class TestCoordinatorRepository:
    def test_authorize_revoke_restore(self) -> None:
        repo = CoordinatorRepository()
        repo.authorize(CLIENT)
        snapshot = repo.snapshot()

        repo.revoke(CLIENT)
        assert not repo.is_authorized(CLIENT)

        repo.restore(snapshot)
        assert repo.is_authorized(CLIENT)
        assert repo.list_all() == [CLIENT]


class TestSequentialNonceRepository:
    def test_increment_returns_previous(self) -> None:
        repo = SequentialNonceRepository()
        assert repo.increment(CLIENT) == 0
        assert repo.increment(CLIENT) == 1
        assert repo.get(CLIENT) == 2


class TestReleaseDecisionRepository:
    def test_save_replaces_and_restore_rolls_back(self) -> None:
        repo = ReleaseDecisionRepository()
        repo.save(ReleaseDecision(task_id="t1", consensus_reached=True, quality_score=0.9))
        snapshot = repo.snapshot()

        repo.save(ReleaseDecision(task_id="t1", user_accepted=True))
        assert not repo.get("t1").consensus_reached

        repo.restore(snapshot)
        assert repo.get("t1").quality_score == 0.9
        assert repo.get("t2") is None

class TestConsumedNonceRepository:
    def test_pairs_are_scoped_to_authorizer(self) -> None:
        repo = ConsumedNonceRepository()
        nonce = b"\x01" * 32
        repo.add(CLIENT, nonce)

        assert repo.contains(CLIENT, nonce)
        assert not repo.contains("0x" + "22" * 20, nonce)
        with pytest.raises(KeyError):
            repo.add(CLIENT, nonce)
