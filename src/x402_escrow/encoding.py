"""Address and hex helpers shared by the escrow, the ledger and the API."""

from __future__ import annotations

import secrets

from eth_utils import is_address, to_bytes, to_checksum_address

from x402_escrow.domain.exceptions import InvalidParameterError
from x402_escrow.domain.models import UINT256_MAX, ZERO_ADDRESS


def normalize_address(value: str, field: str = "address") -> str:
    """Return the EIP-55 checksum form of ``value`` or raise InvalidParameterError."""
    if not isinstance(value, str) or not is_address(value):
        raise InvalidParameterError(f"{field} is not a valid address: {value!r}")
    return to_checksum_address(value)


def require_address(value: str, field: str = "address") -> str:
    """Like normalize_address, but the zero address is rejected too."""
    address = normalize_address(value, field)
    if address == ZERO_ADDRESS:
        raise InvalidParameterError(f"{field} must not be the zero address")
    return address


def same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def to_bytes32(value: bytes | str, field: str = "value") -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string of exactly 32 bytes."""
    raw = value if isinstance(value, bytes) else hex_to_bytes(value, field)
    if len(raw) != 32:
        raise InvalidParameterError(f"{field} must be 32 bytes, got {len(raw)}")
    return raw


def hex_to_bytes(value: str, field: str = "value") -> bytes:
    try:
        return to_bytes(hexstr=value)
    except ValueError as exc:
        raise InvalidParameterError(f"{field} is not valid hex: {value!r}") from exc


def random_nonce() -> bytes:
    """A fresh 32-byte authorization nonce."""
    return secrets.token_bytes(32)


def require_task_id(task_id: str) -> str:
    if not isinstance(task_id, str) or not task_id.strip():
        raise InvalidParameterError("task_id must be a non-empty string")
    return task_id


def require_positive(amount: int, field: str = "amount") -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or not 0 < amount <= UINT256_MAX:
        raise InvalidParameterError(f"{field} must be a positive uint256, got {amount!r}")
    return amount
