"""Task payment REST API routes.

The API drives the escrow as the configured operator identity, which must
be an authorized coordinator for the coordinator-only routes to succeed.

Routes:
    GET    /api/v1/payments/requirements          - x402 payment requirements
    POST   /api/v1/payments                       - Deposit via allowance
    POST   /api/v1/payments/authorized            - Deposit via signed authorization
    GET    /api/v1/payments/{task_id}             - Get payment (+ active, allowed events)
    POST   /api/v1/payments/{task_id}/release     - Release to the agent
    POST   /api/v1/payments/{task_id}/refund      - Refund to the client
    POST   /api/v1/payments/{task_id}/expire      - Mark expired (permissionless)
    POST   /api/v1/payments/{task_id}/auto-refund - Refund an expired payment
    POST   /api/v1/payments/{task_id}/verify-lock - Agent pre-work check
    POST   /api/v1/payments/{task_id}/consensus   - Record the validators' verdict
    POST   /api/v1/payments/{task_id}/acceptance  - Record client acceptance
    GET    /api/v1/payments/{task_id}/release-decision - Whether release is warranted
    GET    /api/v1/payments/{task_id}/events      - Audit trail
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from x402_escrow.api.deps import get_app_settings, get_escrow, get_event_log, get_operator
from x402_escrow.config import Settings
from x402_escrow.domain.models import UINT256_MAX, TaskPayment
from x402_escrow.domain.state_machine import PaymentStateMachine
from x402_escrow.encoding import hex_to_bytes
from x402_escrow.infrastructure.event_sinks import InMemoryEventSink
from x402_escrow.logging_config import get_logger
from x402_escrow.schemas.payments import (
    AuthorizedDepositRequest,
    ConsensusRequest,
    DepositRequest,
    PaymentEventResponse,
    PaymentRequirements,
    PaymentResponse,
    ReleaseDecisionResponse,
    UserAcceptanceRequest,
    VerifyLockRequest,
    VerifyLockResponse,
)
from x402_escrow.services.escrow_service import PaymentEscrow
from x402_escrow.services.requirements import build_payment_requirements

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])
logger = get_logger(__name__)


def _to_response(escrow: PaymentEscrow, payment: TaskPayment) -> PaymentResponse:
    sm = PaymentStateMachine(current_status=payment.status.value)
    return PaymentResponse(
        **payment.to_dict(),
        active=payment.is_active(escrow.now()),
        allowed_events=sm.get_allowed_events(),
    )


# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------


@router.get(
    "/requirements",
    response_model=PaymentRequirements,
    summary="Describe the authorization a client must sign",
)
def get_requirements(
    task_id: str = Query(..., min_length=1),
    agent: str = Query(..., min_length=42, max_length=42),
    amount: int = Query(..., gt=0, le=UINT256_MAX),
    settings: Settings = Depends(get_app_settings),
) -> PaymentRequirements:
    return build_payment_requirements(settings, task_id, agent, amount)


# ---------------------------------------------------------------------------
# Deposits
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=201,
    summary="Deposit funds pulled through the client's allowance",
)
def create_deposit(
    request: DepositRequest,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
    settings: Settings = Depends(get_app_settings),
) -> PaymentResponse:
    deadline = request.deadline or escrow.now() + settings.payment_timeout_seconds
    payment = escrow.deposit(
        operator,
        request.task_id,
        request.client,
        request.agent,
        request.amount,
        deadline,
    )
    return _to_response(escrow, payment)


@router.post(
    "/authorized",
    response_model=PaymentResponse,
    status_code=201,
    summary="Deposit funds with a signed ReceiveWithAuthorization",
)
def create_authorized_deposit(
    request: AuthorizedDepositRequest,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> PaymentResponse:
    payment = escrow.deposit_with_authorization(
        operator,
        request.task_id,
        request.client,
        request.agent,
        request.amount,
        request.valid_after,
        request.valid_before,
        hex_to_bytes(request.nonce, "nonce"),
        hex_to_bytes(request.signature, "signature"),
    )
    return _to_response(escrow, payment)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get(
    "/{task_id}",
    response_model=PaymentResponse,
    summary="Get a task payment (NONE if never deposited)",
)
def get_payment(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
) -> PaymentResponse:
    return _to_response(escrow, escrow.get_payment(task_id))


@router.get(
    "/{task_id}/events",
    response_model=list[PaymentEventResponse],
    summary="Get the audit trail of a task payment",
)
def get_payment_events(
    task_id: str,
    event_log: InMemoryEventSink = Depends(get_event_log),
) -> list[PaymentEventResponse]:
    return [PaymentEventResponse(**event.to_dict()) for event in event_log.for_task(task_id)]


@router.post(
    "/{task_id}/verify-lock",
    response_model=VerifyLockResponse,
    summary="Check that the payment is locked for this agent",
)
def verify_lock(
    task_id: str,
    request: VerifyLockRequest,
    escrow: PaymentEscrow = Depends(get_escrow),
) -> VerifyLockResponse:
    locked = escrow.verify_payment_locked(task_id, request.agent, request.min_amount)
    return VerifyLockResponse(task_id=task_id, locked=locked)


# ---------------------------------------------------------------------------
# Release decision
# ---------------------------------------------------------------------------


def _to_decision_response(escrow: PaymentEscrow, task_id: str) -> ReleaseDecisionResponse:
    return ReleaseDecisionResponse(**escrow.get_release_decision(task_id).to_dict())


@router.post(
    "/{task_id}/consensus",
    response_model=ReleaseDecisionResponse,
    summary="Record the validators' verdict on the result",
)
def record_consensus(
    task_id: str,
    request: ConsensusRequest,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> ReleaseDecisionResponse:
    escrow.record_consensus(operator, task_id, request.reached, request.quality_score)
    return _to_decision_response(escrow, task_id)


@router.post(
    "/{task_id}/acceptance",
    response_model=ReleaseDecisionResponse,
    summary="Record whether the client accepted the result",
)
def record_user_acceptance(
    task_id: str,
    request: UserAcceptanceRequest,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> ReleaseDecisionResponse:
    escrow.record_user_acceptance(operator, task_id, request.accepted)
    return _to_decision_response(escrow, task_id)


@router.get(
    "/{task_id}/release-decision",
    response_model=ReleaseDecisionResponse,
    summary="Whether consensus and acceptance allow releasing the payment",
)
def get_release_decision(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
) -> ReleaseDecisionResponse:
    return _to_decision_response(escrow, task_id)


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@router.post("/{task_id}/release", response_model=PaymentResponse, summary="Release to the agent")
def release_payment(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> PaymentResponse:
    return _to_response(escrow, escrow.release_payment(operator, task_id))


@router.post("/{task_id}/refund", response_model=PaymentResponse, summary="Refund to the client")
def refund_payment(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> PaymentResponse:
    return _to_response(escrow, escrow.refund_payment(operator, task_id))


@router.post("/{task_id}/expire", response_model=PaymentResponse, summary="Mark an overdue payment expired")
def mark_expired(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> PaymentResponse:
    return _to_response(escrow, escrow.mark_expired(operator, task_id))


@router.post(
    "/{task_id}/auto-refund",
    response_model=PaymentResponse,
    summary="Refund an overdue payment in one step",
)
def auto_refund(
    task_id: str,
    escrow: PaymentEscrow = Depends(get_escrow),
    operator: str = Depends(get_operator),
) -> PaymentResponse:
    return _to_response(escrow, escrow.auto_refund_expired(operator, task_id))
