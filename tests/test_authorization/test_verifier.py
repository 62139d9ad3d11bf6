"""Tests for AuthorizationVerifier and the two signer kinds."""

from __future__ import annotations

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from x402_escrow.authorization.signers import (
    SECP256K1_N,
    PlainKeySigner,
    ProgrammableAccountSigner,
    SignerDirectory,
    recover_signer,
)
from x402_escrow.authorization.signing import sign_authorization, sign_cancellation
from x402_escrow.authorization.typed_data import AuthorizationType, Eip712Domain
from x402_escrow.authorization.verifier import AuthorizationVerifier
from x402_escrow.domain.enums import SignerKind
from x402_escrow.domain.exceptions import (
    AuthorizationExpiredError,
    AuthorizationNotYetValidError,
    AuthorizationUsedError,
    InvalidParameterError,
    InvalidSignatureError,
)
from x402_escrow.domain.models import Authorization
from x402_escrow.domain.protocols import EIP1271_MAGIC_VALUE
from x402_escrow.infrastructure.repositories import ConsumedNonceRepository

TOKEN = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
PAYEE = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
NOW = 1_700_000_000
PAYER = Account.from_key("0x" + "c3" * 32)
OTHER = Account.from_key("0x" + "e5" * 32)
DOMAIN = Eip712Domain("USDC", "1", 31337, TOKEN)


class OwnerCheckedWallet:
    """A programmable account that accepts signatures made by its owner key."""

    def __init__(self, address: str, owner: str) -> None:
        self.address = address
        self.owner = owner
        self.calls = 0

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        self.calls += 1
        if recover_signer(digest, signature) == self.owner:
            return EIP1271_MAGIC_VALUE
        return b"\xff\xff\xff\xff"


class RevertingWallet:
    """A programmable account whose validation call always fails."""

    def __init__(self, address: str) -> None:
        self.address = address

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        raise ValueError("execution reverted")


def _authorization(payer: str = PAYER.address, **overrides: object) -> Authorization:
    fields = {
        "from_address": payer,
        "to": PAYEE,
        "value": 5_000_000,
        "valid_after": NOW - 10,
        "valid_before": NOW + 3600,
        "nonce": b"\x07" * 32,
    }
    fields.update(overrides)
    return Authorization(**fields)


@pytest.fixture
def directory() -> SignerDirectory:
    return SignerDirectory()


@pytest.fixture
def verifier(directory: SignerDirectory) -> AuthorizationVerifier:
    return AuthorizationVerifier(DOMAIN, directory)


@pytest.fixture
def consumed() -> ConsumedNonceRepository:
    return ConsumedNonceRepository()


class TestPlainKeySignatures:
    def test_valid_signature_returns_digest(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization()
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        digest = verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

        assert digest == verifier.digest_for(auth, AuthorizationType.TRANSFER)
        # The verifier never records consumption itself
        assert len(consumed) == 0

    def test_signature_by_someone_else(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization()
        signature = sign_authorization(OTHER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_tampered_value(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        signature = sign_authorization(
            PAYER.key, DOMAIN, _authorization(), AuthorizationType.TRANSFER
        )
        tampered = _authorization(value=50_000_000)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(tampered, signature, now=NOW, consumed=consumed)

    def test_wrong_primary_type(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization()
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(
                auth,
                signature,
                now=NOW,
                consumed=consumed,
                primary_type=AuthorizationType.RECEIVE,
            )

    def test_high_s_twin_is_rejected(self) -> None:
        auth = _authorization()
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)
        digest = AuthorizationVerifier(DOMAIN, SignerDirectory()).digest_for(
            auth, AuthorizationType.TRANSFER
        )
        s = int.from_bytes(signature[32:64], "big")
        flipped_v = 55 - signature[64]  # 27 <-> 28
        twin = signature[:32] + (SECP256K1_N - s).to_bytes(32, "big") + bytes([flipped_v])

        assert PlainKeySigner(PAYER.address).verify(digest, signature)
        assert not PlainKeySigner(PAYER.address).verify(digest, twin)

    @pytest.mark.parametrize("signature", [b"", b"\x00" * 64, b"\x01" * 65, b"\x00" * 66])
    def test_malformed_signatures(self, signature: bytes) -> None:
        assert recover_signer(b"\x11" * 32, signature) is None


class TestPreconditions:
    def test_not_yet_valid_at_valid_after(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization(valid_after=NOW)
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(AuthorizationNotYetValidError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_expired_at_valid_before(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization(valid_before=NOW)
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(AuthorizationExpiredError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_consumed_nonce(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        auth = _authorization()
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)
        consumed.add(PAYER.address, auth.nonce)

        with pytest.raises(AuthorizationUsedError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_cancellation(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        nonce = b"\x09" * 32
        signature = sign_cancellation(PAYER.key, DOMAIN, PAYER.address, nonce)

        verifier.verify_cancellation(PAYER.address, nonce, signature, consumed=consumed)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_cancellation(OTHER.address, nonce, signature, consumed=consumed)


class TestProgrammableAccounts:
    WALLET = to_checksum_address("0x" + "ab" * 20)

    def test_directory_resolves_kinds(self, directory: SignerDirectory) -> None:
        wallet = OwnerCheckedWallet(self.WALLET, PAYER.address)
        directory.register(wallet)

        assert directory.resolve(self.WALLET).kind is SignerKind.PROGRAMMABLE_ACCOUNT
        assert isinstance(directory.resolve(self.WALLET), ProgrammableAccountSigner)
        assert directory.resolve(PAYER.address).kind is SignerKind.PLAIN_KEY
        assert directory.is_programmable(self.WALLET.lower())

    def test_wallet_accepts_owner_signature(
        self,
        directory: SignerDirectory,
        verifier: AuthorizationVerifier,
        consumed: ConsumedNonceRepository,
    ) -> None:
        wallet = OwnerCheckedWallet(self.WALLET, PAYER.address)
        directory.register(wallet)
        auth = _authorization(payer=self.WALLET)
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

        assert wallet.calls == 1

    def test_wallet_rejects_foreign_signature(
        self,
        directory: SignerDirectory,
        verifier: AuthorizationVerifier,
        consumed: ConsumedNonceRepository,
    ) -> None:
        directory.register(OwnerCheckedWallet(self.WALLET, PAYER.address))
        auth = _authorization(payer=self.WALLET)
        signature = sign_authorization(OTHER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_unregistered_address_uses_key_recovery(
        self, verifier: AuthorizationVerifier, consumed: ConsumedNonceRepository
    ) -> None:
        # Without registration the wallet address is treated as a plain key,
        # and no private key recovers to it.
        auth = _authorization(payer=self.WALLET)
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)

    def test_reverting_wallet_is_an_invalid_signature(
        self,
        directory: SignerDirectory,
        verifier: AuthorizationVerifier,
        consumed: ConsumedNonceRepository,
    ) -> None:
        directory.register(RevertingWallet(self.WALLET))
        auth = _authorization(payer=self.WALLET)
        signature = sign_authorization(PAYER.key, DOMAIN, auth, AuthorizationType.TRANSFER)

        with pytest.raises(InvalidSignatureError):
            verifier.verify_authorization(auth, signature, now=NOW, consumed=consumed)
        assert len(consumed) == 0


class TestAuthorizationBounds:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"valid_before": 2**256},
            {"valid_after": -1},
            {"value": 2**256},
            {"value": True},
            {"nonce": b"\x07" * 31},
        ],
    )
    def test_out_of_range_fields(self, overrides: dict) -> None:
        with pytest.raises(InvalidParameterError):
            _authorization(**overrides)

    def test_uint256_max_is_accepted(self) -> None:
        auth = _authorization(valid_before=2**256 - 1)
        assert auth.to_message()["validBefore"] == 2**256 - 1
