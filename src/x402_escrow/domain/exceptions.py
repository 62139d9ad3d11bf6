"""Domain exceptions for the payment escrow.

Framework-agnostic; every failure of an escrow, ledger or authorization
operation is one of these. They are translated to HTTP responses by the
API layer's exception handlers.

Categories:
    - authorization: caller lacks coordinator / administrator privilege
    - state:         record not in the required precondition state
    - parameter:     null address, zero amount
    - temporal:      deadline or validity-window violations
    - signature:     signature mismatch, nonce already consumed
    - ledger:        insufficient balance or allowance
    - concurrency:   re-entrant call into a busy service
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base exception for all domain errors."""

    category = "escrow"

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Authorization Errors ---


class AccessDeniedError(EscrowError):
    """Base class for missing-privilege errors."""

    category = "authorization"


class NotCoordinatorError(AccessDeniedError):
    """Raised when a coordinator-only operation is called by anyone else."""

    def __init__(self, caller: str) -> None:
        super().__init__(
            message=f"Caller is not an authorized coordinator: {caller}",
            code="NOT_COORDINATOR",
        )
        self.caller = caller


class NotAdministratorError(AccessDeniedError):
    """Raised when an administrator-only operation is called by anyone else."""

    def __init__(self, caller: str) -> None:
        super().__init__(
            message=f"Caller is not the administrator: {caller}",
            code="NOT_ADMINISTRATOR",
        )
        self.caller = caller


# --- State Errors ---


class PaymentStateError(EscrowError):
    """Base class for precondition-state violations."""

    category = "state"


class PaymentNotFoundError(PaymentStateError):
    """Raised when a task id has no payment record."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            message=f"Payment not found: {task_id}",
            code="PAYMENT_NOT_FOUND",
        )
        self.task_id = task_id


class PaymentAlreadyExistsError(PaymentStateError):
    """Raised when depositing against a task id that was already used."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            message=f"Payment already exists: {task_id}",
            code="PAYMENT_ALREADY_EXISTS",
        )
        self.task_id = task_id


class InvalidStateTransitionError(PaymentStateError):
    """Raised when an attempted transition is not allowed from the current status.

    Example: COMPLETED -> REFUNDED (COMPLETED is final).
    """

    def __init__(self, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted = attempted


class PaymentMismatchError(PaymentStateError):
    """Raised when a locked payment does not match what the agent expects."""

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(
            message=f"Payment {task_id} does not match: {reason}",
            code="PAYMENT_MISMATCH",
        )
        self.task_id = task_id


# --- Parameter Errors ---


class InvalidParameterError(EscrowError):
    """Raised for null addresses, non-positive amounts and similar input errors."""

    category = "parameter"

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_PARAMETER")


# --- Temporal Errors ---


class DeadlineError(EscrowError):
    """Base class for deadline and validity-window violations."""

    category = "temporal"


class InvalidDeadlineError(DeadlineError):
    """Raised when a deposit deadline is not in the future."""

    def __init__(self, deadline: int, now: int) -> None:
        super().__init__(
            message=f"Deadline {deadline} must be after current time {now}",
            code="INVALID_DEADLINE",
        )


class PaymentExpiredError(DeadlineError):
    """Raised when releasing (or locking) a payment whose deadline has passed."""

    def __init__(self, task_id: str, deadline: int) -> None:
        super().__init__(
            message=f"Payment {task_id} expired at {deadline}",
            code="PAYMENT_EXPIRED",
        )
        self.task_id = task_id


class PaymentNotExpiredError(DeadlineError):
    """Raised when expiring a payment whose deadline has not passed yet."""

    def __init__(self, task_id: str, deadline: int) -> None:
        super().__init__(
            message=f"Payment {task_id} not expired until {deadline}",
            code="PAYMENT_NOT_EXPIRED",
        )
        self.task_id = task_id


class AuthorizationNotYetValidError(DeadlineError):
    """Raised when an authorization is used at or before valid_after."""

    def __init__(self, valid_after: int) -> None:
        super().__init__(
            message=f"Authorization is not yet valid (valid after {valid_after})",
            code="AUTHORIZATION_NOT_YET_VALID",
        )


class AuthorizationExpiredError(DeadlineError):
    """Raised when an authorization is used at or after valid_before."""

    def __init__(self, valid_before: int) -> None:
        super().__init__(
            message=f"Authorization is expired (valid before {valid_before})",
            code="AUTHORIZATION_EXPIRED",
        )


# --- Signature Errors ---


class SignatureError(EscrowError):
    """Base class for signed-authorization failures."""

    category = "signature"


class InvalidSignatureError(SignatureError):
    """Raised when a signature does not recover/validate to the claimed signer."""

    def __init__(self, signer: str) -> None:
        super().__init__(
            message=f"Invalid signature for signer {signer}",
            code="INVALID_SIGNATURE",
        )
        self.signer = signer


class AuthorizationUsedError(SignatureError):
    """Raised when an (authorizer, nonce) pair was already used or canceled."""

    def __init__(self, authorizer: str, nonce: bytes) -> None:
        super().__init__(
            message=f"Authorization is used or canceled: {authorizer} nonce 0x{nonce.hex()}",
            code="AUTHORIZATION_USED",
        )
        self.authorizer = authorizer
        self.nonce = nonce


class InvalidPayeeError(SignatureError):
    """Raised when a receive-with-authorization is submitted by someone other than the payee."""

    def __init__(self, caller: str, payee: str) -> None:
        super().__init__(
            message=f"Caller {caller} must be the payee {payee}",
            code="INVALID_PAYEE",
        )


# --- Ledger Errors ---


class LedgerError(EscrowError):
    """Base class for failures of the underlying funds movement."""

    category = "ledger"


class InsufficientBalanceError(LedgerError):
    """Raised when an account cannot cover a debit."""

    def __init__(self, account: str, required: int, available: int) -> None:
        super().__init__(
            message=f"Insufficient balance for {account}: required {required}, available {available}",
            code="INSUFFICIENT_BALANCE",
        )
        self.required = required
        self.available = available


class InsufficientAllowanceError(LedgerError):
    """Raised when a spender's allowance cannot cover a pull."""

    def __init__(self, owner: str, spender: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient allowance from {owner} to {spender}: "
                f"required {required}, available {available}"
            ),
            code="INSUFFICIENT_ALLOWANCE",
        )
        self.required = required
        self.available = available


# --- Concurrency Errors ---


class ReentrantCallError(EscrowError):
    """Raised when a state-mutating entry point is re-entered mid-operation."""

    category = "concurrency"

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"Re-entrant call rejected: {operation}",
            code="REENTRANT_CALL",
        )
        self.operation = operation
