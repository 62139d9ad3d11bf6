"""Client-side helpers: produce the signatures a payer hands to the escrow.

Used by the simulation and the tests; the server never holds private keys.
"""

from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_typed_data

from x402_escrow.authorization.typed_data import AuthorizationType, Eip712Domain, build_typed_data
from x402_escrow.domain.models import Authorization


def sign_authorization(
    private_key: str | bytes,
    domain: Eip712Domain,
    authorization: Authorization,
    primary_type: AuthorizationType = AuthorizationType.RECEIVE,
) -> bytes:
    typed = build_typed_data(domain, primary_type, authorization.to_message())
    signed = Account.sign_message(encode_typed_data(full_message=typed), private_key)
    return bytes(signed.signature)


def sign_cancellation(
    private_key: str | bytes,
    domain: Eip712Domain,
    authorizer: str,
    nonce: bytes,
) -> bytes:
    typed = build_typed_data(
        domain,
        AuthorizationType.CANCEL,
        {"authorizer": authorizer, "nonce": nonce},
    )
    signed = Account.sign_message(encode_typed_data(full_message=typed), private_key)
    return bytes(signed.signature)
