"""Pydantic API schemas."""

from x402_escrow.schemas.payments import (
    AgentInfo,
    AssetInfo,
    AuthorizedDepositRequest,
    DepositRequest,
    EscrowInfo,
    HealthResponse,
    PaymentEventResponse,
    PaymentRequirements,
    PaymentResponse,
    VerifyLockRequest,
    VerifyLockResponse,
)

__all__ = [
    "AgentInfo",
    "AssetInfo",
    "AuthorizedDepositRequest",
    "DepositRequest",
    "EscrowInfo",
    "HealthResponse",
    "PaymentEventResponse",
    "PaymentRequirements",
    "PaymentResponse",
    "VerifyLockRequest",
    "VerifyLockResponse",
]
