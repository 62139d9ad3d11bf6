"""Application services."""

from x402_escrow.services.bootstrap import EscrowServices, build_services
from x402_escrow.services.escrow_service import PaymentEscrow, is_administrator
from x402_escrow.services.requirements import build_payment_requirements

__all__ = [
    "EscrowServices",
    "PaymentEscrow",
    "build_payment_requirements",
    "build_services",
    "is_administrator",
]
