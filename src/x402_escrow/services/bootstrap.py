"""Assemble a ledger, an escrow and their event sinks from Settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from x402_escrow.infrastructure.event_sinks import (
    FanOutEventSink,
    InMemoryEventSink,
    LoggingEventSink,
)
from x402_escrow.ledger.account import LedgerAccount
from x402_escrow.ledger.token import TokenLedger
from x402_escrow.logging_config import get_logger
from x402_escrow.services.escrow_service import PaymentEscrow

if TYPE_CHECKING:
    from x402_escrow.config import Settings
    from x402_escrow.domain.protocols import EventSink
    from x402_escrow.infrastructure.clock import Clock

logger = get_logger(__name__)


@dataclass
class EscrowServices:
    """Everything a process needs to serve payments."""

    ledger: TokenLedger
    escrow: PaymentEscrow
    event_log: InMemoryEventSink


def build_services(
    settings: Settings,
    *,
    clock: Clock | None = None,
    extra_sinks: list[EventSink] | None = None,
) -> EscrowServices:
    """Wire the reference ledger to a fresh escrow and authorize the configured coordinators."""
    ledger = TokenLedger(
        settings.token_address,
        name=settings.token_name,
        version=settings.token_version,
        chain_id=settings.chain_id,
        decimals=settings.token_decimals,
        clock=clock,
    )
    event_log = InMemoryEventSink()
    sinks: list[EventSink] = [event_log, LoggingEventSink(), *(extra_sinks or [])]

    if settings.event_store_enabled:
        from x402_escrow.infrastructure.database import SqlAlchemyEventSink, init_event_store

        sinks.append(SqlAlchemyEventSink(init_event_store(settings)))

    escrow = PaymentEscrow(
        settings.escrow_address,
        LedgerAccount(ledger, settings.escrow_address),
        settings.administrator_address,
        events=FanOutEventSink(sinks),
        clock=clock,
    )
    for coordinator in settings.coordinator_address_list:
        escrow.authorize_coordinator(settings.administrator_address, coordinator)

    logger.info(
        "services.built",
        chain_id=settings.chain_id,
        escrow=escrow.address,
        token=ledger.address,
        coordinators=len(escrow.coordinators),
        event_store=settings.event_store_enabled,
    )
    return EscrowServices(ledger=ledger, escrow=escrow, event_log=event_log)
