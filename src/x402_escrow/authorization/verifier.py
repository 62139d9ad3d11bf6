"""Verification of signed transfer authorizations.

The verifier is stateless: it never stores consumed nonces itself. The
ledger hands it a read handle on its ConsumedNonceRepository and marks the
nonce as consumed only after every check here has passed, inside the same
atomic unit as the funds movement.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from x402_escrow.authorization.signers import SignerDirectory
from x402_escrow.authorization.typed_data import (
    AuthorizationType,
    Eip712Domain,
    authorization_struct_hash,
    cancellation_struct_hash,
    eip712_digest,
)
from x402_escrow.domain.exceptions import (
    AuthorizationExpiredError,
    AuthorizationNotYetValidError,
    AuthorizationUsedError,
    InvalidSignatureError,
)
from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from x402_escrow.domain.models import Authorization
    from x402_escrow.infrastructure.repositories import ConsumedNonceRepository

logger = get_logger(__name__)


class AuthorizationVerifier:
    """Checks validity window, nonce freshness and signature of an authorization."""

    def __init__(self, domain: Eip712Domain, signers: SignerDirectory) -> None:
        self.domain = domain
        self.signers = signers

    def digest_for(self, authorization: Authorization, primary_type: AuthorizationType) -> bytes:
        return eip712_digest(self.domain, authorization_struct_hash(authorization, primary_type))

    def verify_signature(self, signer_address: str, digest: bytes, signature: bytes) -> bool:
        signer = self.signers.resolve(signer_address)
        valid = signer.verify(digest, signature)
        logger.debug(
            "authorization.signature_checked",
            signer=signer.address,
            signer_kind=signer.kind.value,
            valid=valid,
        )
        return valid

    def verify_authorization(
        self,
        authorization: Authorization,
        signature: bytes,
        *,
        now: int,
        consumed: ConsumedNonceRepository,
        primary_type: AuthorizationType = AuthorizationType.TRANSFER,
    ) -> bytes:
        """Raise on any failure, otherwise return the verified digest.

        Check order: validity window, nonce freshness, signature.
        """
        if now <= authorization.valid_after:
            raise AuthorizationNotYetValidError(authorization.valid_after)
        if now >= authorization.valid_before:
            raise AuthorizationExpiredError(authorization.valid_before)
        if consumed.contains(authorization.from_address, authorization.nonce):
            raise AuthorizationUsedError(authorization.from_address, authorization.nonce)

        digest = self.digest_for(authorization, primary_type)
        if not self.verify_signature(authorization.from_address, digest, signature):
            logger.warning(
                "authorization.invalid_signature",
                authorizer=authorization.from_address,
                primary_type=primary_type.value,
            )
            raise InvalidSignatureError(authorization.from_address)
        return digest

    def verify_cancellation(
        self,
        authorizer: str,
        nonce: bytes,
        signature: bytes,
        *,
        consumed: ConsumedNonceRepository,
    ) -> bytes:
        if consumed.contains(authorizer, nonce):
            raise AuthorizationUsedError(authorizer, nonce)
        digest = eip712_digest(self.domain, cancellation_struct_hash(authorizer, nonce))
        if not self.verify_signature(authorizer, digest, signature):
            logger.warning("authorization.invalid_cancel_signature", authorizer=authorizer)
            raise InvalidSignatureError(authorizer)
        return digest
