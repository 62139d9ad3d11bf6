"""Health check endpoint.

Reports the escrow identity and chain it serves. Used by Docker healthchecks,
load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from x402_escrow.api.deps import get_app_settings, get_escrow, get_ledger
from x402_escrow.config import Settings
from x402_escrow.ledger.token import TokenLedger
from x402_escrow.schemas.payments import HealthResponse
from x402_escrow.services.escrow_service import PaymentEscrow

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
def health_check(
    settings: Settings = Depends(get_app_settings),
    escrow: PaymentEscrow = Depends(get_escrow),
    ledger: TokenLedger = Depends(get_ledger),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        chain_id=ledger.domain.chain_id,
        escrow=escrow.address,
        token=ledger.address,
        event_store="enabled" if settings.event_store_enabled else "disabled",
    )
