"""Reference fungible-token ledger with EIP-3009 signed authorizations.

An in-process stand-in for a stablecoin contract: balances, ERC-20 style
allowances, and transfers authorized by an off-ledger EIP-712 signature.
Every public mutation is atomic: on any error all balances, allowances,
consumed nonces and emitted events are restored to their prior values.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from x402_escrow.authorization.signers import SignerDirectory
from x402_escrow.authorization.typed_data import AuthorizationType, Eip712Domain
from x402_escrow.authorization.verifier import AuthorizationVerifier
from x402_escrow.domain.enums import LedgerEventType
from x402_escrow.domain.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidParameterError,
    InvalidPayeeError,
)
from x402_escrow.domain.models import Authorization, LedgerEvent
from x402_escrow.encoding import normalize_address, require_address, same_address, to_bytes32
from x402_escrow.infrastructure.clock import system_clock
from x402_escrow.infrastructure.repositories import ConsumedNonceRepository
from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from x402_escrow.domain.protocols import ProgrammableAccount
    from x402_escrow.infrastructure.clock import Clock

logger = get_logger(__name__)


def _require_amount(amount: int) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise InvalidParameterError(f"amount must be a non-negative integer, got {amount!r}")
    return amount


class TokenLedger:
    """Balances, allowances and signed-authorization transfers for one token."""

    def __init__(
        self,
        address: str,
        *,
        name: str = "USDC",
        version: str = "1",
        chain_id: int = 31337,
        decimals: int = 6,
        clock: Clock | None = None,
        signers: SignerDirectory | None = None,
    ) -> None:
        self.address = require_address(address, "token address")
        self.decimals = decimals
        self.domain = Eip712Domain(name, version, chain_id, self.address)
        self.signers = signers or SignerDirectory()
        self.verifier = AuthorizationVerifier(self.domain, self.signers)
        self._clock = clock or system_clock
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._consumed = ConsumedNonceRepository()
        self._events: list[LedgerEvent] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def domain_separator(self) -> bytes:
        return self.domain.separator

    def balance_of(self, account: str) -> int:
        account = normalize_address(account, "account")
        with self._lock:
            return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        key = (normalize_address(owner, "owner"), normalize_address(spender, "spender"))
        with self._lock:
            return self._allowances.get(key, 0)

    def authorization_state(self, authorizer: str, nonce: bytes | str) -> bool:
        """True if the (authorizer, nonce) pair was used or canceled."""
        authorizer = normalize_address(authorizer, "authorizer")
        with self._lock:
            return self._consumed.contains(authorizer, to_bytes32(nonce, "nonce"))

    @property
    def total_supply(self) -> int:
        with self._lock:
            return sum(self._balances.values())

    @property
    def events(self) -> tuple[LedgerEvent, ...]:
        with self._lock:
            return tuple(self._events)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register_account(self, account: ProgrammableAccount) -> str:
        """Mark ``account.address`` as validating its own signatures (EIP-1271)."""
        return self.signers.register(account)

    def mint(self, to: str, amount: int) -> None:
        to = require_address(to, "to")
        _require_amount(amount)
        with self._atomic():
            self._balances[to] = self._balances.get(to, 0) + amount
            self._emit(LedgerEventType.TRANSFER, {"from": None, "to": to, "value": amount})
        logger.info("ledger.minted", to=to, amount=amount)

    # ------------------------------------------------------------------
    # ERC-20 style movements
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> None:
        owner = require_address(owner, "owner")
        spender = require_address(spender, "spender")
        _require_amount(amount)
        with self._atomic():
            self._allowances[(owner, spender)] = amount
            self._emit(LedgerEventType.APPROVAL, {"owner": owner, "spender": spender, "value": amount})
        logger.info("ledger.approved", owner=owner, spender=spender, amount=amount)

    def transfer(self, sender: str, to: str, amount: int) -> None:
        sender = require_address(sender, "sender")
        to = require_address(to, "to")
        _require_amount(amount)
        with self._atomic():
            self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        """Move ``amount`` from ``owner`` to ``to``, spending ``spender``'s allowance."""
        spender = require_address(spender, "spender")
        owner = require_address(owner, "owner")
        to = require_address(to, "to")
        _require_amount(amount)
        with self._atomic():
            available = self._allowances.get((owner, spender), 0)
            if available < amount:
                raise InsufficientAllowanceError(owner, spender, amount, available)
            self._allowances[(owner, spender)] = available - amount
            self._move(owner, to, amount)

    # ------------------------------------------------------------------
    # EIP-3009 signed authorizations
    # ------------------------------------------------------------------

    def transfer_with_authorization(self, authorization: Authorization, signature: bytes) -> None:
        """Execute a TransferWithAuthorization; anyone may submit it."""
        self._execute_authorization(authorization, signature, AuthorizationType.TRANSFER)

    def receive_with_authorization(
        self,
        caller: str,
        authorization: Authorization,
        signature: bytes,
    ) -> None:
        """Execute a ReceiveWithAuthorization; only the payee may submit it.

        Binding the submitter to the payee stops a front-runner from
        replaying the signature into a different call on the payee's behalf.
        """
        if not same_address(caller, authorization.to):
            raise InvalidPayeeError(caller, authorization.to)
        self._execute_authorization(authorization, signature, AuthorizationType.RECEIVE)

    def cancel_authorization(self, authorizer: str, nonce: bytes | str, signature: bytes) -> None:
        """Consume an unused nonce without moving funds."""
        authorizer = require_address(authorizer, "authorizer")
        nonce = to_bytes32(nonce, "nonce")
        with self._atomic():
            self.verifier.verify_cancellation(authorizer, nonce, signature, consumed=self._consumed)
            self._consumed.add(authorizer, nonce)
            self._emit(
                LedgerEventType.AUTHORIZATION_CANCELED,
                {"authorizer": authorizer, "nonce": nonce},
            )
        logger.info("ledger.authorization_canceled", authorizer=authorizer, nonce=nonce)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute_authorization(
        self,
        authorization: Authorization,
        signature: bytes,
        primary_type: AuthorizationType,
    ) -> None:
        authorization = replace(
            authorization,
            from_address=require_address(authorization.from_address, "from"),
            to=require_address(authorization.to, "to"),
        )
        authorizer = authorization.from_address
        _require_amount(authorization.value)
        with self._atomic():
            self.verifier.verify_authorization(
                authorization,
                signature,
                now=self._clock(),
                consumed=self._consumed,
                primary_type=primary_type,
            )
            self._consumed.add(authorizer, authorization.nonce)
            self._emit(
                LedgerEventType.AUTHORIZATION_USED,
                {"authorizer": authorizer, "nonce": authorization.nonce},
            )
            self._move(authorizer, authorization.to, authorization.value)
        logger.info(
            "ledger.authorization_used",
            primary_type=primary_type.value,
            authorizer=authorizer,
            to=authorization.to,
            amount=authorization.value,
            nonce=authorization.nonce,
        )

    def _move(self, sender: str, to: str, amount: int) -> None:
        available = self._balances.get(sender, 0)
        if available < amount:
            raise InsufficientBalanceError(sender, amount, available)
        self._balances[sender] = available - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self._emit(LedgerEventType.TRANSFER, {"from": sender, "to": to, "value": amount})
        logger.debug("ledger.transferred", sender=sender, to=to, amount=amount)

    def _emit(self, event_type: LedgerEventType, data: dict[str, Any]) -> None:
        self._events.append(LedgerEvent(event_type=event_type, data=data, timestamp=self._clock()))

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        with self._lock:
            balances = dict(self._balances)
            allowances = dict(self._allowances)
            consumed = self._consumed.snapshot()
            event_count = len(self._events)
            try:
                yield
            except Exception:
                self._balances = balances
                self._allowances = allowances
                self._consumed.restore(consumed)
                del self._events[event_count:]
                raise
