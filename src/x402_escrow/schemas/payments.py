"""Pydantic schemas for the payments API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain dataclasses so the wire format can evolve without
touching the escrow.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from x402_escrow.domain.models import UINT256_MAX

ADDRESS_FIELD = {"min_length": 42, "max_length": 42}

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    """Request body for a deposit pulled through the client's allowance."""

    task_id: str = Field(..., min_length=1, max_length=128, examples=["task-001"])
    client: str = Field(
        ...,
        **ADDRESS_FIELD,
        description="Payer address; must have approved the escrow for at least `amount`",
    )
    agent: str = Field(..., **ADDRESS_FIELD, description="Payee address")
    amount: int = Field(
        ...,
        gt=0,
        le=UINT256_MAX,
        description="Amount in token base units",
        examples=[10_000_000],
    )
    deadline: int | None = Field(
        default=None,
        gt=0,
        le=UINT256_MAX,
        description="Unix deadline; defaults to now + the configured payment timeout",
    )


class AuthorizedDepositRequest(BaseModel):
    """Request body for a deposit pulled with a signed ReceiveWithAuthorization."""

    task_id: str = Field(..., min_length=1, max_length=128)
    client: str = Field(..., **ADDRESS_FIELD, description="Payer address (the signer)")
    agent: str = Field(..., **ADDRESS_FIELD, description="Payee address")
    amount: int = Field(..., gt=0, le=UINT256_MAX)
    valid_after: int = Field(..., ge=0, le=UINT256_MAX)
    valid_before: int = Field(..., gt=0, le=UINT256_MAX, description="Also becomes the payment deadline")
    nonce: str = Field(
        ...,
        min_length=66,
        max_length=66,
        description="32-byte authorization nonce (0x-prefixed hex)",
    )
    signature: str = Field(
        ...,
        min_length=132,
        max_length=132,
        description="65-byte r||s||v signature (0x-prefixed hex)",
    )


class VerifyLockRequest(BaseModel):
    """Request body for an agent checking its payment before starting work."""

    agent: str = Field(..., **ADDRESS_FIELD)
    min_amount: int = Field(..., gt=0, le=UINT256_MAX)


class ConsensusRequest(BaseModel):
    """Request body carrying the validators' verdict on a task's result."""

    reached: bool
    quality_score: float = Field(..., ge=0.0, le=1.0)


class UserAcceptanceRequest(BaseModel):
    accepted: bool


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class PaymentResponse(BaseModel):
    """Response schema for a task payment."""

    model_config = ConfigDict(from_attributes=True)

    task_id: str
    client: str
    agent: str
    amount: int
    deposit_time: int
    deadline: int
    status: str
    active: bool = False
    allowed_events: list[str] = Field(
        default_factory=list,
        description="State machine events that can fire from the current status",
    )


class PaymentEventResponse(BaseModel):
    """Response schema for an audit event."""

    sequence: int
    event_type: str
    task_id: str
    client: str
    agent: str
    amount: int
    status: str
    actor: str
    timestamp: int
    metadata: dict = Field(default_factory=dict)


class VerifyLockResponse(BaseModel):
    task_id: str
    locked: bool


class ReleaseDecisionResponse(BaseModel):
    task_id: str
    consensus_reached: bool
    quality_score: float
    user_accepted: bool
    should_release: bool


class AssetInfo(BaseModel):
    symbol: str
    contract: str
    decimals: int


class EscrowInfo(BaseModel):
    contract: str
    timeout: int = Field(description="Seconds the payment stays releasable")


class AgentInfo(BaseModel):
    address: str


class PaymentRequirements(BaseModel):
    """x402 payment requirements a client turns into a signed authorization."""

    x402_version: int = 1
    scheme: str = "exact"
    network: str
    chain_id: int
    task_id: str
    amount: int
    primary_type: str = Field(description="EIP-712 primary type the client must sign")
    asset: AssetInfo
    escrow: EscrowInfo
    agent: AgentInfo
    requires_payment: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    chain_id: int
    escrow: str
    token: str
    event_store: str = "disabled"
