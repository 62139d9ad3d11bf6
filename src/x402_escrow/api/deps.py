"""FastAPI dependency injection providers.

The app factory stores the wired services and the settings on
``app.state``; these providers hand them to route handlers via Depends().
"""

from __future__ import annotations

from fastapi import Request

from x402_escrow.config import Settings
from x402_escrow.infrastructure.event_sinks import InMemoryEventSink
from x402_escrow.ledger.token import TokenLedger
from x402_escrow.services.escrow_service import PaymentEscrow


def get_app_settings(request: Request) -> Settings:
    """Provide the application settings."""
    return request.app.state.settings


def get_escrow(request: Request) -> PaymentEscrow:
    return request.app.state.services.escrow


def get_ledger(request: Request) -> TokenLedger:
    return request.app.state.services.ledger


def get_event_log(request: Request) -> InMemoryEventSink:
    return request.app.state.services.event_log


def get_operator(request: Request) -> str:
    """The identity the API acts as when it calls the escrow."""
    return request.app.state.settings.operator_address
