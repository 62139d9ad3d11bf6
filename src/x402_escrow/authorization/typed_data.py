"""EIP-712 structured hashing for transfer authorizations (EIP-3009).

The digest a payer signs is

    keccak256(0x19 0x01 || domainSeparator || structHash)

where the domain binds the signature to one token name/version, one chain
and one verifying contract, so an authorization cannot be replayed against
another deployment. Hashes are built by hand with eth-abi so the verifier
never depends on a wallet library; ``build_typed_data`` produces the
equivalent JSON document for wallets that sign typed data directly.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from eth_abi import encode
from eth_account.messages import SignableMessage
from eth_utils import keccak

from x402_escrow.domain.models import Authorization

EIP712_DOMAIN_TYPEHASH = keccak(
    text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
TRANSFER_WITH_AUTHORIZATION_TYPEHASH = keccak(
    text=(
        "TransferWithAuthorization(address from,address to,uint256 value,"
        "uint256 validAfter,uint256 validBefore,bytes32 nonce)"
    )
)
RECEIVE_WITH_AUTHORIZATION_TYPEHASH = keccak(
    text=(
        "ReceiveWithAuthorization(address from,address to,uint256 value,"
        "uint256 validAfter,uint256 validBefore,bytes32 nonce)"
    )
)
CANCEL_AUTHORIZATION_TYPEHASH = keccak(text="CancelAuthorization(address authorizer,bytes32 nonce)")


class AuthorizationType(enum.StrEnum):
    """EIP-712 primary types understood by the ledger."""

    TRANSFER = "TransferWithAuthorization"
    RECEIVE = "ReceiveWithAuthorization"
    CANCEL = "CancelAuthorization"


_TYPEHASHES = {
    AuthorizationType.TRANSFER: TRANSFER_WITH_AUTHORIZATION_TYPEHASH,
    AuthorizationType.RECEIVE: RECEIVE_WITH_AUTHORIZATION_TYPEHASH,
    AuthorizationType.CANCEL: CANCEL_AUTHORIZATION_TYPEHASH,
}

_AUTHORIZATION_FIELDS = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]

EIP712_TYPES: dict[str, list[dict[str, str]]] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    AuthorizationType.TRANSFER.value: _AUTHORIZATION_FIELDS,
    AuthorizationType.RECEIVE.value: _AUTHORIZATION_FIELDS,
    AuthorizationType.CANCEL.value: [
        {"name": "authorizer", "type": "address"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


@dataclass(frozen=True)
class Eip712Domain:
    """The signing domain of one ledger deployment."""

    name: str
    version: str
    chain_id: int
    verifying_contract: str

    @cached_property
    def separator(self) -> bytes:
        return keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [
                    EIP712_DOMAIN_TYPEHASH,
                    keccak(text=self.name),
                    keccak(text=self.version),
                    self.chain_id,
                    self.verifying_contract,
                ],
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def authorization_struct_hash(
    authorization: Authorization,
    primary_type: AuthorizationType = AuthorizationType.TRANSFER,
) -> bytes:
    if primary_type is AuthorizationType.CANCEL:
        raise ValueError("cancellations are hashed with cancellation_struct_hash")
    return keccak(
        encode(
            ["bytes32", "address", "address", "uint256", "uint256", "uint256", "bytes32"],
            [
                _TYPEHASHES[primary_type],
                authorization.from_address,
                authorization.to,
                authorization.value,
                authorization.valid_after,
                authorization.valid_before,
                authorization.nonce,
            ],
        )
    )


def cancellation_struct_hash(authorizer: str, nonce: bytes) -> bytes:
    return keccak(
        encode(
            ["bytes32", "address", "bytes32"],
            [CANCEL_AUTHORIZATION_TYPEHASH, authorizer, nonce],
        )
    )


def eip712_digest(domain: Eip712Domain, struct_hash: bytes) -> bytes:
    """The 32-byte hash that is actually signed."""
    return keccak(b"\x19\x01" + domain.separator + struct_hash)


def signable_message(domain: Eip712Domain, struct_hash: bytes) -> SignableMessage:
    """The same payload in eth-account's EIP-191 envelope (version 0x01)."""
    return SignableMessage(version=b"\x01", header=domain.separator, body=struct_hash)


def build_typed_data(
    domain: Eip712Domain,
    primary_type: AuthorizationType,
    message: dict[str, Any],
) -> dict[str, Any]:
    """Full EIP-712 typed-data document, as handed to a wallet for signing."""
    return {
        "types": {
            "EIP712Domain": EIP712_TYPES["EIP712Domain"],
            primary_type.value: EIP712_TYPES[primary_type.value],
        },
        "primaryType": primary_type.value,
        "domain": domain.to_dict(),
        "message": message,
    }
