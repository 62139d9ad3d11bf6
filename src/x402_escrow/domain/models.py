"""Domain records: payments, authorizations and notification events.

All records are frozen dataclasses. Repositories store them by value and
updates go through ``dataclasses.replace`` so a snapshot of a repository is
just a shallow copy of its mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from x402_escrow.domain.enums import EventType, LedgerEventType, PaymentStatus
from x402_escrow.domain.exceptions import InvalidParameterError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_MAX = 2**256 - 1
RELEASE_QUALITY_THRESHOLD = 0.5


@dataclass(frozen=True)
class TaskPayment:
    """The escrow record of a single task.

    Attributes:
        task_id: Opaque caller-chosen key, unique for the lifetime of the escrow.
        client: Payer address (funds are refunded here).
        agent: Payee address (funds are released here).
        amount: Escrowed amount in the ledger's base unit.
        deposit_time: Unix timestamp of the deposit.
        deadline: Unix timestamp after which the payment can no longer be released.
        status: Current PaymentStatus.
    """

    task_id: str
    client: str = ZERO_ADDRESS
    agent: str = ZERO_ADDRESS
    amount: int = 0
    deposit_time: int = 0
    deadline: int = 0
    status: PaymentStatus = PaymentStatus.NONE

    @classmethod
    def empty(cls, task_id: str) -> TaskPayment:
        """The record returned for a task id that was never deposited."""
        return cls(task_id=task_id)

    def with_status(self, status: PaymentStatus) -> TaskPayment:
        return replace(self, status=status)

    def is_active(self, now: int) -> bool:
        """DEPOSITED and the deadline has not passed."""
        return self.status == PaymentStatus.DEPOSITED and now <= self.deadline

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "client": self.client,
            "agent": self.agent,
            "amount": self.amount,
            "deposit_time": self.deposit_time,
            "deadline": self.deadline,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class Authorization:
    """An off-ledger transfer authorization signed by ``from_address``.

    Never persisted; only the (from_address, nonce) pair outlives its use.
    """

    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: bytes

    def __post_init__(self) -> None:
        if len(self.nonce) != 32:
            raise InvalidParameterError(f"nonce must be 32 bytes, got {len(self.nonce)}")
        for name in ("value", "valid_after", "valid_before"):
            number = getattr(self, name)
            if isinstance(number, bool) or not isinstance(number, int):
                raise InvalidParameterError(f"{name} must be an integer, got {number!r}")
            if not 0 <= number <= UINT256_MAX:
                raise InvalidParameterError(f"{name} must be a uint256, got {number!r}")

    def to_message(self) -> dict[str, Any]:
        """The EIP-712 message body (field names as signed)."""
        return {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class ReleaseDecision:
    """What the coordinator has learned about a task's result.

    Payment may be released only once validators reached consensus on a
    result scoring above RELEASE_QUALITY_THRESHOLD and the client accepted it.
    """

    task_id: str
    consensus_reached: bool = False
    quality_score: float = 0.0
    user_accepted: bool = False

    @property
    def should_release(self) -> bool:
        return (
            self.consensus_reached
            and self.user_accepted
            and self.quality_score > RELEASE_QUALITY_THRESHOLD
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "consensus_reached": self.consensus_reached,
            "quality_score": self.quality_score,
            "user_accepted": self.user_accepted,
            "should_release": self.should_release,
        }


@dataclass(frozen=True)
class PaymentEvent:
    """Append-only notification emitted by every state-changing escrow call."""

    sequence: int
    event_type: EventType
    task_id: str
    client: str
    agent: str
    amount: int
    status: PaymentStatus
    actor: str
    timestamp: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "event_type": self.event_type.value,
            "task_id": self.task_id,
            "client": self.client,
            "agent": self.agent,
            "amount": self.amount,
            "status": self.status.value,
            "actor": self.actor,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class LedgerEvent:
    """Notification emitted by the reference token ledger."""

    event_type: LedgerEventType
    data: dict[str, Any]
    timestamp: int
