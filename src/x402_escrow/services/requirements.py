"""x402 payment requirements: what a client needs to sign a deposit."""

from __future__ import annotations

from typing import TYPE_CHECKING

from x402_escrow.authorization.typed_data import AuthorizationType
from x402_escrow.encoding import require_address, require_positive, require_task_id
from x402_escrow.schemas.payments import AgentInfo, AssetInfo, EscrowInfo, PaymentRequirements

if TYPE_CHECKING:
    from x402_escrow.config import Settings


def build_payment_requirements(
    settings: Settings,
    task_id: str,
    agent: str,
    amount: int,
) -> PaymentRequirements:
    """Describe the authorization a client must sign to fund ``task_id``.

    The client signs a ReceiveWithAuthorization for ``amount`` to the escrow
    address, valid for at most the configured payment timeout.
    """
    return PaymentRequirements(
        network=f"eip155:{settings.chain_id}",
        chain_id=settings.chain_id,
        task_id=require_task_id(task_id),
        amount=require_positive(amount),
        primary_type=AuthorizationType.RECEIVE.value,
        asset=AssetInfo(
            symbol=settings.token_name,
            contract=require_address(settings.token_address, "token address"),
            decimals=settings.token_decimals,
        ),
        escrow=EscrowInfo(
            contract=require_address(settings.escrow_address, "escrow address"),
            timeout=settings.payment_timeout_seconds,
        ),
        agent=AgentInfo(address=require_address(agent, "agent")),
    )
