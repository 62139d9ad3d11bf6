"""Shared test fixtures for the x402 payment escrow test suite.

Provides:
    - Real secp256k1 accounts (eth-account) for every role
    - A controllable clock
    - A reference token ledger and an escrow wired to it
    - Helpers that build and sign authorizations the way a client would
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from x402_escrow.authorization import AuthorizationType, sign_authorization
from x402_escrow.domain.models import Authorization
from x402_escrow.infrastructure.event_sinks import InMemoryEventSink
from x402_escrow.ledger import LedgerAccount, TokenLedger
from x402_escrow.services.escrow_service import PaymentEscrow

START_TIME = 1_700_000_000
ONE_HOUR = 3600
AMOUNT = 10_000_000  # 10 USDC at 6 decimals

TOKEN_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ESCROW_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"


class FakeClock:
    """Deterministic clock; tests move time with ``advance``."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@pytest.fixture
def admin() -> LocalAccount:
    return Account.from_key("0x" + "a1" * 32)


@pytest.fixture
def coordinator() -> LocalAccount:
    return Account.from_key("0x" + "b2" * 32)


@pytest.fixture
def client_account() -> LocalAccount:
    return Account.from_key("0x" + "c3" * 32)


@pytest.fixture
def agent_account() -> LocalAccount:
    return Account.from_key("0x" + "d4" * 32)


@pytest.fixture
def outsider() -> LocalAccount:
    return Account.from_key("0x" + "e5" * 32)


# ---------------------------------------------------------------------------
# Ledger and escrow
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token(clock: FakeClock) -> TokenLedger:
    return TokenLedger(TOKEN_ADDRESS, name="USDC", version="1", chain_id=31337, clock=clock)


@pytest.fixture
def event_log() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def escrow(
    token: TokenLedger,
    clock: FakeClock,
    event_log: InMemoryEventSink,
    admin: LocalAccount,
    coordinator: LocalAccount,
) -> PaymentEscrow:
    service = PaymentEscrow(
        ESCROW_ADDRESS,
        LedgerAccount(token, ESCROW_ADDRESS),
        admin.address,
        events=event_log,
        clock=clock,
    )
    service.authorize_coordinator(admin.address, coordinator.address)
    event_log.clear()
    return service


@pytest.fixture
def funded_client(token: TokenLedger, client_account: LocalAccount) -> LocalAccount:
    """A client holding 100 USDC with the escrow approved for all of it."""
    token.mint(client_account.address, 10 * AMOUNT)
    token.approve(client_account.address, ESCROW_ADDRESS, 10 * AMOUNT)
    return client_account


# ---------------------------------------------------------------------------
# Authorization helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_authorization(clock: FakeClock) -> Callable[..., Authorization]:
    """Build an authorization valid from one second ago for ``valid_for`` seconds."""

    def _make(
        payer: str,
        *,
        to: str = ESCROW_ADDRESS,
        value: int = AMOUNT,
        valid_for: int = ONE_HOUR,
        nonce: bytes = b"\x01" * 32,
    ) -> Authorization:
        return Authorization(
            from_address=payer,
            to=to,
            value=value,
            valid_after=clock.now - 1,
            valid_before=clock.now + valid_for,
            nonce=nonce,
        )

    return _make


@pytest.fixture
def sign(token: TokenLedger) -> Callable[..., bytes]:
    """Sign an authorization against the test token's EIP-712 domain."""

    def _sign(
        account: LocalAccount,
        authorization: Authorization,
        primary_type: AuthorizationType = AuthorizationType.RECEIVE,
    ) -> bytes:
        return sign_authorization(account.key, token.domain, authorization, primary_type)

    return _sign
