"""Domain layer - records, states, errors and collaborator protocols."""

from x402_escrow.domain.enums import (
    EventType,
    LedgerEventType,
    PaymentStatus,
    SignerKind,
)
from x402_escrow.domain.exceptions import (
    EscrowError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
)
from x402_escrow.domain.models import (
    ZERO_ADDRESS,
    Authorization,
    LedgerEvent,
    PaymentEvent,
    ReleaseDecision,
    TaskPayment,
)
from x402_escrow.domain.protocols import (
    EIP1271_MAGIC_VALUE,
    EventSink,
    Ledger,
    ProgrammableAccount,
)
from x402_escrow.domain.state_machine import PaymentStateMachine

__all__ = [
    "EventType",
    "LedgerEventType",
    "PaymentStatus",
    "SignerKind",
    "EscrowError",
    "InvalidStateTransitionError",
    "PaymentNotFoundError",
    "ZERO_ADDRESS",
    "Authorization",
    "LedgerEvent",
    "PaymentEvent",
    "ReleaseDecision",
    "TaskPayment",
    "EIP1271_MAGIC_VALUE",
    "EventSink",
    "Ledger",
    "ProgrammableAccount",
    "PaymentStateMachine",
]
