"""Re-entrancy and rollback: a hostile collaborator cannot nest calls into the escrow."""

from __future__ import annotations

import threading
from collections.abc import Callable

import pytest
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from conftest import AMOUNT, ESCROW_ADDRESS, ONE_HOUR, START_TIME, FakeClock
from x402_escrow.authorization.signers import recover_signer
from x402_escrow.domain.enums import EventType, PaymentStatus
from x402_escrow.domain.exceptions import ReentrantCallError
from x402_escrow.domain.models import Authorization
from x402_escrow.domain.protocols import EIP1271_MAGIC_VALUE, Ledger
from x402_escrow.infrastructure.event_sinks import InMemoryEventSink
from x402_escrow.ledger import LedgerAccount, TokenLedger
from x402_escrow.services.escrow_service import PaymentEscrow


class CallbackLedger(LedgerAccount):
    """A ledger that calls ``hook`` before every push, like a token with transfer hooks."""

    def __init__(self, token: TokenLedger, holder: str) -> None:
        super().__init__(token, holder)
        self.hook: Callable[[], None] | None = None

    def push_transfer(self, to: str, amount: int) -> None:
        if self.hook is not None:
            self.hook()
        super().push_transfer(to, amount)


class ReenteringWallet:
    """A programmable account that tries to release a payment while validating."""

    def __init__(self, address: str, owner: str) -> None:
        self.address = address
        self.owner = owner
        self.attempt: Callable[[], None] | None = None
        self.seen: list[type[Exception]] = []

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        if self.attempt is not None:
            try:
                self.attempt()
            except ReentrantCallError as exc:
                self.seen.append(type(exc))
        if recover_signer(digest, signature) == self.owner:
            return EIP1271_MAGIC_VALUE
        return b"\x00\x00\x00\x00"


@pytest.fixture
def callback_ledger(token: TokenLedger) -> CallbackLedger:
    return CallbackLedger(token, ESCROW_ADDRESS)


@pytest.fixture
def hooked_escrow(
    callback_ledger: CallbackLedger,
    clock: FakeClock,
    event_log: InMemoryEventSink,
    admin: LocalAccount,
    coordinator: LocalAccount,
) -> PaymentEscrow:
    service = PaymentEscrow(
        ESCROW_ADDRESS,
        callback_ledger,
        admin.address,
        events=event_log,
        clock=clock,
    )
    service.authorize_coordinator(admin.address, coordinator.address)
    event_log.clear()
    return service


class TestReentrantLedger:
    def test_ledger_satisfies_protocol(self, callback_ledger: CallbackLedger) -> None:
        assert isinstance(callback_ledger, Ledger)

    def test_nested_release_is_rejected_and_outer_rolls_back(
        self,
        hooked_escrow: PaymentEscrow,
        callback_ledger: CallbackLedger,
        token: TokenLedger,
        event_log: InMemoryEventSink,
        coordinator: LocalAccount,
        funded_client: LocalAccount,
        agent_account: LocalAccount,
    ) -> None:
        hooked_escrow.deposit(
            coordinator.address,
            "task-1",
            funded_client.address,
            agent_account.address,
            AMOUNT,
            START_TIME + ONE_HOUR,
        )
        callback_ledger.hook = lambda: hooked_escrow.refund_payment(coordinator.address, "task-1")

        with pytest.raises(ReentrantCallError):
            hooked_escrow.release_payment(coordinator.address, "task-1")

        assert hooked_escrow.get_payment("task-1").status is PaymentStatus.DEPOSITED
        assert token.balance_of(ESCROW_ADDRESS) == AMOUNT
        assert token.balance_of(agent_account.address) == 0
        assert len(event_log.events) == 1  # only the deposit

    def test_swallowed_reentry_still_moves_funds_once(
        self,
        hooked_escrow: PaymentEscrow,
        callback_ledger: CallbackLedger,
        token: TokenLedger,
        coordinator: LocalAccount,
        funded_client: LocalAccount,
        agent_account: LocalAccount,
    ) -> None:
        hooked_escrow.deposit(
            coordinator.address,
            "task-1",
            funded_client.address,
            agent_account.address,
            AMOUNT,
            START_TIME + ONE_HOUR,
        )
        rejected: list[str] = []

        def sneaky_refund() -> None:
            try:
                hooked_escrow.refund_payment(coordinator.address, "task-1")
            except ReentrantCallError as exc:
                rejected.append(exc.operation)

        callback_ledger.hook = sneaky_refund
        hooked_escrow.release_payment(coordinator.address, "task-1")

        assert rejected == ["refund_payment"]
        assert hooked_escrow.get_payment("task-1").status is PaymentStatus.COMPLETED
        assert token.balance_of(agent_account.address) == AMOUNT
        assert token.balance_of(ESCROW_ADDRESS) == 0

    def test_guard_is_released_after_failure(
        self,
        hooked_escrow: PaymentEscrow,
        callback_ledger: CallbackLedger,
        coordinator: LocalAccount,
        funded_client: LocalAccount,
        agent_account: LocalAccount,
    ) -> None:
        hooked_escrow.deposit(
            coordinator.address,
            "task-1",
            funded_client.address,
            agent_account.address,
            AMOUNT,
            START_TIME + ONE_HOUR,
        )
        callback_ledger.hook = lambda: hooked_escrow.increment_nonce(
            coordinator.address, funded_client.address
        )
        with pytest.raises(ReentrantCallError):
            hooked_escrow.release_payment(coordinator.address, "task-1")

        callback_ledger.hook = None
        payment = hooked_escrow.release_payment(coordinator.address, "task-1")
        assert payment.status is PaymentStatus.COMPLETED
        assert hooked_escrow.get_nonce(funded_client.address) == 0


class TestReentrantProgrammableAccount:
    WALLET = to_checksum_address("0x" + "cd" * 20)

    def test_wallet_cannot_reenter_during_signed_deposit(
        self,
        escrow: PaymentEscrow,
        token: TokenLedger,
        coordinator: LocalAccount,
        client_account: LocalAccount,
        agent_account: LocalAccount,
        make_authorization: Callable[..., Authorization],
        sign: Callable[..., bytes],
    ) -> None:
        wallet = ReenteringWallet(self.WALLET, client_account.address)
        token.register_account(wallet)
        token.mint(self.WALLET, 2 * AMOUNT)
        token.approve(self.WALLET, ESCROW_ADDRESS, AMOUNT)
        wallet.attempt = lambda: escrow.deposit(
            coordinator.address,
            "task-inner",
            self.WALLET,
            agent_account.address,
            AMOUNT,
            START_TIME + ONE_HOUR,
        )
        auth = make_authorization(self.WALLET)

        payment = escrow.deposit_with_authorization(
            coordinator.address,
            "task-outer",
            self.WALLET,
            agent_account.address,
            AMOUNT,
            auth.valid_after,
            auth.valid_before,
            auth.nonce,
            sign(client_account, auth),  # the owner key signs for the wallet
        )

        assert wallet.seen == [ReentrantCallError]
        assert payment.status is PaymentStatus.DEPOSITED
        assert escrow.get_payment("task-inner").status is PaymentStatus.NONE
        assert token.balance_of(ESCROW_ADDRESS) == AMOUNT
        assert token.allowance(self.WALLET, ESCROW_ADDRESS) == AMOUNT


class TestOtherThreads:
    def test_call_from_another_thread_waits_for_the_unit(
        self,
        hooked_escrow: PaymentEscrow,
        callback_ledger: CallbackLedger,
        event_log: InMemoryEventSink,
        coordinator: LocalAccount,
        funded_client: LocalAccount,
        agent_account: LocalAccount,
    ) -> None:
        hooked_escrow.deposit(
            coordinator.address,
            "task-1",
            funded_client.address,
            agent_account.address,
            AMOUNT,
            START_TIME + ONE_HOUR,
        )
        errors: list[Exception] = []

        def bump_nonce() -> None:
            try:
                hooked_escrow.increment_nonce(coordinator.address, funded_client.address)
            except Exception as exc:
                errors.append(exc)

        worker = threading.Thread(target=bump_nonce)
        callback_ledger.hook = worker.start

        hooked_escrow.release_payment(coordinator.address, "task-1")
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert errors == []
        assert hooked_escrow.get_nonce(funded_client.address) == 1
        assert [e.event_type for e in event_log.events][-2:] == [
            EventType.PAYMENT_RELEASED,
            EventType.NONCE_INCREMENTED,
        ]
