"""FastAPI middleware and exception handlers for request tracing and errors.

Stack:
    1. RequestIDMiddleware - injects X-Request-ID into every request/response
    2. EscrowError handler - domain exceptions -> structured JSON errors
    3. CORSMiddleware - handles browser-based clients (if any)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from x402_escrow.domain.exceptions import (
    EscrowError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

STATUS_BY_CATEGORY = {
    "authorization": 403,
    "state": 409,
    "parameter": 422,
    "temporal": 422,
    "signature": 400,
    "ledger": 402,
    "concurrency": 409,
}


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Domain error handler
# ---------------------------------------------------------------------------
def status_code_for(exc: EscrowError) -> int:
    if isinstance(exc, PaymentNotFoundError):
        return 404
    return STATUS_BY_CATEGORY.get(exc.category, 400)


async def escrow_error_handler(request: Request, exc: EscrowError) -> JSONResponse:
    """Return a structured JSON error for any domain exception."""
    status_code = status_code_for(exc)
    if isinstance(exc, InvalidStateTransitionError):
        logger.warning(
            "state_machine.invalid_transition",
            current=exc.current_state,
            attempted=exc.attempted,
        )
    else:
        logger.warning("domain.error", code=exc.code, category=exc.category, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register middleware and exception handlers on the FastAPI application.

    Middleware is applied bottom-up, so the last added runs first.
    """
    app.add_exception_handler(EscrowError, escrow_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
