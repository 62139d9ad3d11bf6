"""Collaborator protocols consumed by the escrow.

These are Protocols (structural subtyping): the reference ledger, test
doubles and production adapters only need to match the shape. The domain
layer has ZERO imports from eth-account, SQLAlchemy or FastAPI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from x402_escrow.domain.models import Authorization, PaymentEvent

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
EIP1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


@runtime_checkable
class Ledger(Protocol):
    """The funds-movement interface the escrow consumes, bound to the escrow's account.

    Every method raises an EscrowError subclass on failure (ledger, signature
    or temporal) and leaves all balances untouched in that case.

    Concrete implementations:
        - ledger/account.py  LedgerAccount (view of TokenLedger for one holder)
    """

    def push_transfer(self, to: str, amount: int) -> None:
        """Credit ``to`` by ``amount`` from the bound account's own balance."""
        ...

    def pull_with_allowance(self, owner: str, to: str, amount: int) -> None:
        """Debit ``owner`` (which must have approved the bound account) and credit ``to``."""
        ...

    def pull_with_authorization(self, authorization: Authorization, signature: bytes) -> None:
        """Verify a signed authorization, consume its nonce and move the funds."""
        ...


@runtime_checkable
class ProgrammableAccount(Protocol):
    """An account whose signature validity is decided by its own logic (EIP-1271)."""

    address: str

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        """Return EIP1271_MAGIC_VALUE if ``signature`` is valid for ``digest``."""
        ...


@runtime_checkable
class EventSink(Protocol):
    """Write-only destination for escrow notifications.

    Concrete implementations:
        - infrastructure/event_sinks.py  InMemoryEventSink, LoggingEventSink, FanOutEventSink
        - infrastructure/database/event_store.py  SqlAlchemyEventSink
    """

    def publish(self, event: PaymentEvent) -> None:
        ...
