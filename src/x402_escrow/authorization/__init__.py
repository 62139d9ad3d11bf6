"""EIP-712 / EIP-3009 authorization hashing, signer variants and verification."""

from x402_escrow.authorization.signers import (
    PlainKeySigner,
    ProgrammableAccountSigner,
    Signer,
    SignerDirectory,
    recover_signer,
)
from x402_escrow.authorization.signing import sign_authorization, sign_cancellation
from x402_escrow.authorization.typed_data import (
    AuthorizationType,
    Eip712Domain,
    authorization_struct_hash,
    build_typed_data,
    cancellation_struct_hash,
    eip712_digest,
    signable_message,
)
from x402_escrow.authorization.verifier import AuthorizationVerifier

__all__ = [
    "AuthorizationType",
    "AuthorizationVerifier",
    "Eip712Domain",
    "PlainKeySigner",
    "ProgrammableAccountSigner",
    "Signer",
    "SignerDirectory",
    "authorization_struct_hash",
    "build_typed_data",
    "cancellation_struct_hash",
    "eip712_digest",
    "recover_signer",
    "sign_authorization",
    "sign_cancellation",
    "signable_message",
]
