"""Domain enumerations for the payment escrow.

Framework-agnostic: no FastAPI, no SQLAlchemy, no eth-account imports.
"""

import enum


class PaymentStatus(enum.StrEnum):
    """Lifecycle states of a task payment.

    Transitions are enforced by PaymentStateMachine (domain/state_machine.py).
    NONE is the implicit status of a task id that was never deposited.
    """

    NONE = "NONE"
    DEPOSITED = "DEPOSITED"
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"


class EventType(enum.StrEnum):
    """Types of append-only notification records emitted by the escrow.

    Every state-changing escrow operation emits exactly one event.
    """

    # Payment lifecycle
    PAYMENT_DEPOSITED = "PAYMENT_DEPOSITED"
    PAYMENT_RELEASED = "PAYMENT_RELEASED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    PAYMENT_EXPIRED = "PAYMENT_EXPIRED"

    # Access control
    COORDINATOR_AUTHORIZED = "COORDINATOR_AUTHORIZED"
    COORDINATOR_REVOKED = "COORDINATOR_REVOKED"
    ADMINISTRATION_TRANSFERRED = "ADMINISTRATION_TRANSFERRED"

    # Counter-based replay protection
    NONCE_INCREMENTED = "NONCE_INCREMENTED"

    # Release decision inputs
    CONSENSUS_RECORDED = "CONSENSUS_RECORDED"
    USER_ACCEPTANCE_RECORDED = "USER_ACCEPTANCE_RECORDED"


class LedgerEventType(enum.StrEnum):
    """Notification records emitted by the reference token ledger."""

    TRANSFER = "TRANSFER"
    APPROVAL = "APPROVAL"
    AUTHORIZATION_USED = "AUTHORIZATION_USED"
    AUTHORIZATION_CANCELED = "AUTHORIZATION_CANCELED"


class SignerKind(enum.StrEnum):
    """The closed set of signer kinds an authorization can come from."""

    PLAIN_KEY = "plain_key"
    PROGRAMMABLE_ACCOUNT = "programmable_account"
