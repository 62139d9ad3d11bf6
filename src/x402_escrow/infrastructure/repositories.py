"""In-memory repositories for the escrow and the reference ledger.

Repositories store frozen records by value and never manage their own
transactions: the owning service takes ``snapshot()`` before a mutating
operation and calls ``restore()`` if the operation fails, so a failed call
leaves no trace.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from x402_escrow.domain.models import ReleaseDecision, TaskPayment


class PaymentRepository:
    """Payment records keyed by task id."""

    def __init__(self) -> None:
        self._payments: dict[str, TaskPayment] = {}

    def get(self, task_id: str) -> TaskPayment | None:
        return self._payments.get(task_id)

    def exists(self, task_id: str) -> bool:
        return task_id in self._payments

    def add(self, payment: TaskPayment) -> TaskPayment:
        """Insert a new record. Task ids are never reused."""
        if payment.task_id in self._payments:
            raise KeyError(f"payment already stored: {payment.task_id}")
        self._payments[payment.task_id] = payment
        return payment

    def update(self, payment: TaskPayment) -> TaskPayment:
        """Replace an existing record (call AFTER state machine validation)."""
        if payment.task_id not in self._payments:
            raise KeyError(f"payment not stored: {payment.task_id}")
        self._payments[payment.task_id] = payment
        return payment

    def __len__(self) -> int:
        return len(self._payments)

    def snapshot(self) -> dict[str, TaskPayment]:
        return dict(self._payments)

    def restore(self, snapshot: dict[str, TaskPayment]) -> None:
        self._payments = dict(snapshot)


class CoordinatorRepository:
    """The set of addresses allowed to drive payment operations."""

    def __init__(self) -> None:
        self._coordinators: set[str] = set()

    def is_authorized(self, address: str) -> bool:
        return address in self._coordinators

    def authorize(self, address: str) -> None:
        self._coordinators.add(address)

    def revoke(self, address: str) -> None:
        self._coordinators.discard(address)

    def list_all(self) -> list[str]:
        return sorted(self._coordinators)

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._coordinators)

    def restore(self, snapshot: frozenset[str]) -> None:
        self._coordinators = set(snapshot)


class SequentialNonceRepository:
    """Per-client counters, starting at zero, that only ever go up."""

    def __init__(self) -> None:
        self._nonces: dict[str, int] = {}

    def get(self, client: str) -> int:
        return self._nonces.get(client, 0)

    def increment(self, client: str) -> int:
        """Advance the counter and return the value that was consumed."""
        current = self._nonces.get(client, 0)
        self._nonces[client] = current + 1
        return current

    def snapshot(self) -> dict[str, int]:
        return dict(self._nonces)

    def restore(self, snapshot: dict[str, int]) -> None:
        self._nonces = dict(snapshot)


class ReleaseDecisionRepository:
    """Release decision inputs keyed by task id."""

    def __init__(self) -> None:
        self._decisions: dict[str, ReleaseDecision] = {}

    def get(self, task_id: str) -> ReleaseDecision | None:
        return self._decisions.get(task_id)

    def save(self, decision: ReleaseDecision) -> ReleaseDecision:
        self._decisions[decision.task_id] = decision
        return decision

    def snapshot(self) -> dict[str, ReleaseDecision]:
        return dict(self._decisions)

    def restore(self, snapshot: dict[str, ReleaseDecision]) -> None:
        self._decisions = dict(snapshot)

class ConsumedNonceRepository:
    """(authorizer, nonce) pairs that were used or canceled.

    Membership is permanent: there is no removal outside of rolling back
    the operation that added the pair.
    """

    def __init__(self) -> None:
        self._consumed: set[tuple[str, bytes]] = set()

    def contains(self, authorizer: str, nonce: bytes) -> bool:
        return (authorizer, nonce) in self._consumed

    def add(self, authorizer: str, nonce: bytes) -> None:
        key = (authorizer, nonce)
        if key in self._consumed:
            raise KeyError(f"nonce already consumed for {authorizer}")
        self._consumed.add(key)

    def __len__(self) -> int:
        return len(self._consumed)

    def snapshot(self) -> frozenset[tuple[str, bytes]]:
        return frozenset(self._consumed)

    def restore(self, snapshot: frozenset[tuple[str, bytes]]) -> None:
        self._consumed = set(snapshot)
