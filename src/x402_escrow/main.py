"""FastAPI application entry point for the x402 payment escrow.

Lifecycle:
    1. Build: wire the reference ledger, the escrow and its event sinks
       from Settings (or take pre-built services, as the tests do).
    2. Startup: initialize logging.
    3. Shutdown: dispose of the event store engine, if one was opened.

Run with:
    uv run uvicorn x402_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from x402_escrow.config import Settings, get_settings
from x402_escrow.logging_config import get_logger, setup_logging
from x402_escrow.services.bootstrap import EscrowServices, build_services

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings: Settings = app.state.settings

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        chain_id=settings.chain_id,
        escrow=app.state.services.escrow.address,
    )

    yield

    logger.info("app.shutting_down")
    if settings.event_store_enabled:
        from x402_escrow.infrastructure.database import close_event_store

        close_event_store()
    logger.info("app.stopped")


def create_app(
    settings: Settings | None = None,
    services: EscrowServices | None = None,
) -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = settings or get_settings()

    app = FastAPI(
        title="x402 Payment Escrow",
        description="Conditional escrow for task payments with EIP-3009 signed deposits.",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.services = services or build_services(settings)

    # --- Middleware ---
    from x402_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from x402_escrow.api.routes.health import router as health_router
    from x402_escrow.api.routes.payments import router as payments_router

    app.include_router(health_router)
    app.include_router(payments_router)

    return app


# The app instance used by Uvicorn
app = create_app()
