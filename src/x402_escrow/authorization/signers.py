"""Signer variants: plain-key accounts and programmable (EIP-1271) accounts.

Both expose the same capability, ``verify(digest, signature) -> bool``.
Which variant applies to an address is decided by the SignerDirectory,
which knows the addresses that carry their own validation logic.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import ClassVar

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from x402_escrow.domain.enums import SignerKind
from x402_escrow.domain.protocols import EIP1271_MAGIC_VALUE, ProgrammableAccount
from x402_escrow.encoding import normalize_address
from x402_escrow.logging_config import get_logger

logger = get_logger(__name__)

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2


def split_signature(signature: bytes) -> tuple[int, int, int] | None:
    """Split a 65-byte r||s||v signature. Returns None if it is not canonical.

    Only the lower half of the curve order is accepted for ``s`` and ``v``
    must be 27 or 28, which rules out the malleable twin of every signature.
    """
    if len(signature) != 65:
        return None
    r = int.from_bytes(signature[0:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v not in (27, 28):
        return None
    if r == 0 or s == 0 or s > SECP256K1_HALF_N:
        return None
    return v, r, s


def recover_signer(digest: bytes, signature: bytes) -> str | None:
    """ECDSA-recover the checksum address that produced ``signature`` over ``digest``."""
    parts = split_signature(signature)
    if parts is None:
        return None
    v, r, s = parts
    try:
        public_key = keys.Signature(vrs=(v - 27, r, s)).recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError):
        return None
    return public_key.to_checksum_address()


@dataclass(frozen=True)
class PlainKeySigner:
    """An externally-owned account: valid iff ECDSA recovery yields its address."""

    address: str
    kind: ClassVar[SignerKind] = SignerKind.PLAIN_KEY

    def verify(self, digest: bytes, signature: bytes) -> bool:
        recovered = recover_signer(digest, signature)
        return recovered is not None and recovered == self.address


@dataclass(frozen=True)
class ProgrammableAccountSigner:
    """An account with its own validation logic: valid iff it returns the magic value."""

    address: str
    account: ProgrammableAccount
    kind: ClassVar[SignerKind] = SignerKind.PROGRAMMABLE_ACCOUNT

    def verify(self, digest: bytes, signature: bytes) -> bool:
        """A raising account counts as a rejection, like a reverted EIP-1271 call."""
        try:
            result = self.account.is_valid_signature(digest, signature)
        except Exception:
            logger.warning(
                "signers.programmable_account_reverted",
                address=self.address,
                exc_info=True,
            )
            return False
        return result == EIP1271_MAGIC_VALUE


Signer = PlainKeySigner | ProgrammableAccountSigner


@dataclass
class SignerDirectory:
    """Maps addresses to the signer variant that validates them."""

    _accounts: dict[str, ProgrammableAccount] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def register(self, account: ProgrammableAccount) -> str:
        address = normalize_address(account.address, "account")
        with self._lock:
            self._accounts[address] = account
        logger.info("signers.programmable_account_registered", address=address)
        return address

    def is_programmable(self, address: str) -> bool:
        with self._lock:
            return normalize_address(address) in self._accounts

    def resolve(self, address: str) -> Signer:
        address = normalize_address(address)
        with self._lock:
            account = self._accounts.get(address)
        if account is None:
            return PlainKeySigner(address)
        return ProgrammableAccountSigner(address, account)
