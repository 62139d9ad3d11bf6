"""Payment Escrow - core business logic for task payments.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (payments, coordinators, sequential nonces, release decisions)
    - Ledger (funds movement, bound to the escrow's own account)
    - Event sink (notifications, published after each operation commits)

The REST routes and the simulation both call into this service, so every
business rule lives here. The caller identity is always passed explicitly
as the first argument, like the sender of a transaction.

Every mutating operation is one atomic unit: it runs under a service-wide
lock, it is rejected if re-entered from inside another mutating operation
(for example by a ledger or programmable account calling back in), and on
any error the repositories are restored to their state before the call.
"""

from __future__ import annotations

import math
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from statemachine.exceptions import TransitionNotAllowed

from x402_escrow.domain.enums import EventType, PaymentStatus
from x402_escrow.domain.exceptions import (
    InvalidDeadlineError,
    InvalidParameterError,
    InvalidStateTransitionError,
    NotAdministratorError,
    NotCoordinatorError,
    PaymentAlreadyExistsError,
    PaymentExpiredError,
    PaymentMismatchError,
    PaymentNotExpiredError,
    PaymentNotFoundError,
    ReentrantCallError,
)
from x402_escrow.domain.models import (
    ZERO_ADDRESS,
    Authorization,
    PaymentEvent,
    ReleaseDecision,
    TaskPayment,
)
from x402_escrow.domain.state_machine import PaymentStateMachine
from x402_escrow.encoding import (
    normalize_address,
    require_address,
    require_positive,
    require_task_id,
    same_address,
    to_bytes32,
)
from x402_escrow.infrastructure.clock import system_clock
from x402_escrow.infrastructure.event_sinks import InMemoryEventSink
from x402_escrow.infrastructure.repositories import (
    CoordinatorRepository,
    PaymentRepository,
    ReleaseDecisionRepository,
    SequentialNonceRepository,
)
from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from x402_escrow.domain.protocols import EventSink, Ledger
    from x402_escrow.infrastructure.clock import Clock

logger = get_logger(__name__)


def is_administrator(caller: str, administrator: str) -> bool:
    """The administrator check, kept free of any service state."""
    return same_address(caller, administrator)


def _require_quality_score(score: float) -> float:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidParameterError(f"quality score must be a number, got {score!r}")
    if not math.isfinite(score) or not 0.0 <= score <= 1.0:
        raise InvalidParameterError(f"quality score must be between 0 and 1, got {score!r}")
    return float(score)


class PaymentEscrow:
    """Holds task payments between deposit and release or refund."""

    def __init__(
        self,
        address: str,
        ledger: Ledger,
        administrator: str,
        *,
        events: EventSink | None = None,
        clock: Clock | None = None,
        payments: PaymentRepository | None = None,
        coordinators: CoordinatorRepository | None = None,
        sequential_nonces: SequentialNonceRepository | None = None,
        release_decisions: ReleaseDecisionRepository | None = None,
    ) -> None:
        self.address = require_address(address, "escrow address")
        self._ledger = ledger
        self._administrator = require_address(administrator, "administrator")
        self._events = events if events is not None else InMemoryEventSink()
        self._clock = clock or system_clock
        self._payments = payments or PaymentRepository()
        self._coordinators = coordinators or CoordinatorRepository()
        self._sequential_nonces = sequential_nonces or SequentialNonceRepository()
        self._release_decisions = release_decisions or ReleaseDecisionRepository()

        self._lock = threading.RLock()
        self._busy_owner: int | None = None
        self._sequence = 0
        self._pending: list[PaymentEvent] = []

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    def deposit(
        self,
        caller: str,
        task_id: str,
        client: str,
        agent: str,
        amount: int,
        deadline: int,
    ) -> TaskPayment:
        """Pull ``amount`` from ``client`` via its allowance and lock it for ``task_id``."""
        with self._mutation("deposit"):
            caller = self._require_coordinator(caller)
            payment = self._new_payment(task_id, client, agent, amount)
            now = self._clock()
            if deadline <= now:
                raise InvalidDeadlineError(deadline, now)
            self._fire_transition(payment, "deposit")

            self._ledger.pull_with_allowance(payment.client, self.address, payment.amount)

            payment = TaskPayment(
                task_id=payment.task_id,
                client=payment.client,
                agent=payment.agent,
                amount=payment.amount,
                deposit_time=now,
                deadline=deadline,
                status=PaymentStatus.DEPOSITED,
            )
            self._payments.add(payment)
            self._record(EventType.PAYMENT_DEPOSITED, payment, caller, method="allowance")

        logger.info(
            "escrow.deposited",
            task_id=task_id,
            client=payment.client,
            agent=payment.agent,
            amount=payment.amount,
            deadline=deadline,
        )
        return payment

    def deposit_with_authorization(
        self,
        caller: str,
        task_id: str,
        client: str,
        agent: str,
        amount: int,
        valid_after: int,
        valid_before: int,
        nonce: bytes | str,
        signature: bytes,
    ) -> TaskPayment:
        """Pull ``amount`` from ``client`` with a signed authorization; no approval needed.

        The client signs a ReceiveWithAuthorization naming this escrow as
        payee. The payment deadline is the authorization's ``valid_before``.
        """
        with self._mutation("deposit_with_authorization"):
            caller = self._require_coordinator(caller)
            payment = self._new_payment(task_id, client, agent, amount)
            nonce = to_bytes32(nonce, "nonce")
            now = self._clock()
            if valid_before <= now:
                raise InvalidDeadlineError(valid_before, now)
            self._fire_transition(payment, "deposit")

            authorization = Authorization(
                from_address=payment.client,
                to=self.address,
                value=payment.amount,
                valid_after=valid_after,
                valid_before=valid_before,
                nonce=nonce,
            )
            self._ledger.pull_with_authorization(authorization, signature)

            payment = TaskPayment(
                task_id=payment.task_id,
                client=payment.client,
                agent=payment.agent,
                amount=payment.amount,
                deposit_time=now,
                deadline=valid_before,
                status=PaymentStatus.DEPOSITED,
            )
            self._payments.add(payment)
            self._record(
                EventType.PAYMENT_DEPOSITED,
                payment,
                caller,
                method="authorization",
                nonce="0x" + nonce.hex(),
            )

        logger.info(
            "escrow.deposited_with_authorization",
            task_id=task_id,
            client=payment.client,
            agent=payment.agent,
            amount=payment.amount,
            deadline=valid_before,
            nonce=nonce,
        )
        return payment

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def release_payment(self, caller: str, task_id: str) -> TaskPayment:
        """Pay the agent. Only before the deadline."""
        with self._mutation("release_payment"):
            caller = self._require_coordinator(caller)
            payment = self._get_payment_or_raise(task_id)
            new_status = self._fire_transition(payment, "release")
            if self._clock() > payment.deadline:
                raise PaymentExpiredError(task_id, payment.deadline)

            payment = self._payments.update(payment.with_status(new_status))
            self._ledger.push_transfer(payment.agent, payment.amount)
            self._record(EventType.PAYMENT_RELEASED, payment, caller)

        logger.info("escrow.released", task_id=task_id, agent=payment.agent, amount=payment.amount)
        return payment

    def refund_payment(self, caller: str, task_id: str) -> TaskPayment:
        """Return the funds to the client, from DEPOSITED or EXPIRED."""
        with self._mutation("refund_payment"):
            caller = self._require_coordinator(caller)
            payment = self._get_payment_or_raise(task_id)
            previous = payment.status
            new_status = self._fire_transition(payment, "refund")

            payment = self._payments.update(payment.with_status(new_status))
            self._ledger.push_transfer(payment.client, payment.amount)
            self._record(EventType.PAYMENT_REFUNDED, payment, caller, previous_status=previous.value)

        logger.info("escrow.refunded", task_id=task_id, client=payment.client, amount=payment.amount)
        return payment

    def mark_expired(self, caller: str, task_id: str) -> TaskPayment:
        """Flag a payment whose deadline passed. Anyone may call; no funds move."""
        with self._mutation("mark_expired"):
            caller = normalize_address(caller, "caller")
            payment = self._get_payment_or_raise(task_id)
            new_status = self._fire_transition(payment, "expire")
            if self._clock() <= payment.deadline:
                raise PaymentNotExpiredError(task_id, payment.deadline)

            payment = self._payments.update(payment.with_status(new_status))
            self._record(EventType.PAYMENT_EXPIRED, payment, caller)

        logger.info("escrow.expired", task_id=task_id, deadline=payment.deadline, caller=caller)
        return payment

    def auto_refund_expired(self, caller: str, task_id: str) -> TaskPayment:
        """Refund a DEPOSITED payment past its deadline in one step."""
        with self._mutation("auto_refund_expired"):
            caller = self._require_coordinator(caller)
            payment = self._get_payment_or_raise(task_id)
            new_status = self._fire_transition(payment, "auto_refund")
            if self._clock() <= payment.deadline:
                raise PaymentNotExpiredError(task_id, payment.deadline)

            payment = self._payments.update(payment.with_status(new_status))
            self._ledger.push_transfer(payment.client, payment.amount)
            self._record(EventType.PAYMENT_REFUNDED, payment, caller, automatic=True)

        logger.info("escrow.auto_refunded", task_id=task_id, client=payment.client, amount=payment.amount)
        return payment

    # ------------------------------------------------------------------
    # Release decision
    # ------------------------------------------------------------------

    def record_consensus(
        self,
        caller: str,
        task_id: str,
        reached: bool,
        quality_score: float,
    ) -> ReleaseDecision:
        """Store the validators' verdict on a task's result."""
        with self._mutation("record_consensus"):
            caller = self._require_coordinator(caller)
            payment = self._get_payment_or_raise(task_id)
            quality_score = _require_quality_score(quality_score)
            decision = self._release_decisions.save(
                replace(
                    self._decision_for(task_id),
                    consensus_reached=bool(reached),
                    quality_score=quality_score,
                )
            )
            self._record(
                EventType.CONSENSUS_RECORDED,
                payment,
                caller,
                consensus_reached=decision.consensus_reached,
                quality_score=decision.quality_score,
            )

        logger.info(
            "escrow.consensus_recorded",
            task_id=task_id,
            reached=decision.consensus_reached,
            quality_score=decision.quality_score,
        )
        return decision

    def record_user_acceptance(self, caller: str, task_id: str, accepted: bool) -> ReleaseDecision:
        """Store whether the client accepted the delivered result."""
        with self._mutation("record_user_acceptance"):
            caller = self._require_coordinator(caller)
            payment = self._get_payment_or_raise(task_id)
            decision = self._release_decisions.save(
                replace(self._decision_for(task_id), user_accepted=bool(accepted))
            )
            self._record(
                EventType.USER_ACCEPTANCE_RECORDED,
                payment,
                caller,
                user_accepted=decision.user_accepted,
            )

        logger.info("escrow.user_acceptance_recorded", task_id=task_id, accepted=decision.user_accepted)
        return decision

    # ------------------------------------------------------------------
    # Sequential nonces
    # ------------------------------------------------------------------

    def increment_nonce(self, caller: str, client: str) -> int:
        """Advance ``client``'s counter and return the value consumed."""
        with self._mutation("increment_nonce"):
            caller = self._require_coordinator(caller)
            client = require_address(client, "client")
            consumed = self._sequential_nonces.increment(client)
            self._record_admin(EventType.NONCE_INCREMENTED, caller, client, nonce=consumed)

        logger.debug("escrow.nonce_incremented", client=client, nonce=consumed)
        return consumed

    def get_nonce(self, client: str) -> int:
        client = normalize_address(client, "client")
        with self._lock:
            return self._sequential_nonces.get(client)

    # ------------------------------------------------------------------
    # Coordinators and administration
    # ------------------------------------------------------------------

    def authorize_coordinator(self, caller: str, coordinator: str) -> None:
        with self._mutation("authorize_coordinator"):
            caller = self._require_administrator(caller)
            coordinator = require_address(coordinator, "coordinator")
            self._coordinators.authorize(coordinator)
            self._record_admin(EventType.COORDINATOR_AUTHORIZED, caller, coordinator)
        logger.info("escrow.coordinator_authorized", coordinator=coordinator)

    def revoke_coordinator(self, caller: str, coordinator: str) -> None:
        with self._mutation("revoke_coordinator"):
            caller = self._require_administrator(caller)
            coordinator = require_address(coordinator, "coordinator")
            self._coordinators.revoke(coordinator)
            self._record_admin(EventType.COORDINATOR_REVOKED, caller, coordinator)
        logger.info("escrow.coordinator_revoked", coordinator=coordinator)

    def transfer_administration(self, caller: str, new_administrator: str) -> None:
        with self._mutation("transfer_administration"):
            caller = self._require_administrator(caller)
            new_administrator = require_address(new_administrator, "new administrator")
            self._administrator = new_administrator
            self._record_admin(
                EventType.ADMINISTRATION_TRANSFERRED,
                caller,
                new_administrator,
                previous=caller,
            )
        logger.info("escrow.administration_transferred", administrator=new_administrator)

    def is_coordinator(self, address: str) -> bool:
        address = normalize_address(address)
        with self._lock:
            return self._coordinators.is_authorized(address)

    @property
    def administrator(self) -> str:
        with self._lock:
            return self._administrator

    @property
    def coordinators(self) -> list[str]:
        with self._lock:
            return self._coordinators.list_all()

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def now(self) -> int:
        """Current time on the escrow's clock."""
        return self._clock()

    def get_payment(self, task_id: str) -> TaskPayment:
        """The stored record, or an empty NONE record for an unknown task id."""
        with self._lock:
            return self._payments.get(task_id) or TaskPayment.empty(task_id)

    def is_payment_active(self, task_id: str) -> bool:
        with self._lock:
            return self.get_payment(task_id).is_active(self._clock())

    def get_status(self, task_id: str) -> dict[str, Any]:
        """Status with the events that could fire next."""
        payment = self.get_payment(task_id)
        sm = PaymentStateMachine(current_status=payment.status.value)
        return {
            "task_id": task_id,
            "status": payment.status.value,
            "active": self.is_payment_active(task_id),
            "allowed_events": sm.get_allowed_events(),
        }

    def verify_payment_locked(self, task_id: str, agent: str, min_amount: int) -> bool:
        """Check, before starting work, that the agent's payment is really locked.

        Returns True or raises a descriptive state or temporal error.
        """
        agent = normalize_address(agent, "agent")
        with self._lock:
            payment = self._get_payment_or_raise(task_id)
            now = self._clock()
        if payment.status != PaymentStatus.DEPOSITED:
            raise PaymentMismatchError(task_id, f"status is {payment.status.value}, not DEPOSITED")
        if payment.agent != agent:
            raise PaymentMismatchError(task_id, f"payee is {payment.agent}, not {agent}")
        if payment.amount < min_amount:
            raise PaymentMismatchError(
                task_id, f"amount {payment.amount} is below the required {min_amount}"
            )
        if payment.deadline <= now:
            raise PaymentExpiredError(task_id, payment.deadline)
        return True

    def get_release_decision(self, task_id: str) -> ReleaseDecision:
        """The recorded inputs, or an all-negative decision for an unknown task id."""
        with self._lock:
            return self._decision_for(task_id)

    def should_release_payment(self, task_id: str) -> bool:
        """True once consensus, quality and client acceptance all allow release.

        Advisory only: release_payment does not consult it.
        """
        with self._lock:
            if not self._payments.exists(task_id):
                return False
            return self._decision_for(task_id).should_release

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_coordinator(self, caller: str) -> str:
        caller = normalize_address(caller, "caller")
        if not self._coordinators.is_authorized(caller):
            logger.warning("escrow.access_denied", caller=caller, required="coordinator")
            raise NotCoordinatorError(caller)
        return caller

    def _require_administrator(self, caller: str) -> str:
        caller = normalize_address(caller, "caller")
        if not is_administrator(caller, self._administrator):
            logger.warning("escrow.access_denied", caller=caller, required="administrator")
            raise NotAdministratorError(caller)
        return caller

    def _new_payment(self, task_id: str, client: str, agent: str, amount: int) -> TaskPayment:
        task_id = require_task_id(task_id)
        if self._payments.exists(task_id):
            raise PaymentAlreadyExistsError(task_id)
        return TaskPayment(
            task_id=task_id,
            client=require_address(client, "client"),
            agent=require_address(agent, "agent"),
            amount=require_positive(amount),
        )

    def _get_payment_or_raise(self, task_id: str) -> TaskPayment:
        payment = self._payments.get(task_id)
        if payment is None:
            raise PaymentNotFoundError(task_id)
        return payment

    def _decision_for(self, task_id: str) -> ReleaseDecision:
        return self._release_decisions.get(task_id) or ReleaseDecision(task_id=task_id)

    def _fire_transition(self, payment: TaskPayment, event_name: str) -> PaymentStatus:
        """Validate a transition and return the resulting status.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        sm = PaymentStateMachine(current_status=payment.status.value)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidStateTransitionError(payment.status.value, event_name)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(payment.status.value, event_name) from err
        return PaymentStatus(sm.status)

    def _record(
        self,
        event_type: EventType,
        payment: TaskPayment,
        actor: str,
        **metadata: Any,
    ) -> None:
        self._sequence += 1
        self._pending.append(
            PaymentEvent(
                sequence=self._sequence,
                event_type=event_type,
                task_id=payment.task_id,
                client=payment.client,
                agent=payment.agent,
                amount=payment.amount,
                status=payment.status,
                actor=actor,
                timestamp=self._clock(),
                metadata=metadata,
            )
        )

    def _record_admin(self, event_type: EventType, actor: str, subject: str, **metadata: Any) -> None:
        """Record an event that is not about a payment; ``subject`` goes in ``client``."""
        self._record(
            event_type,
            TaskPayment(task_id="", client=subject, agent=ZERO_ADDRESS),
            actor,
            **metadata,
        )

    @contextmanager
    def _mutation(self, operation: str) -> Iterator[None]:
        """Serialize, guard against re-entry, roll back on error, publish on commit.

        Re-entry is detected per thread: a nested call from the thread that
        owns the unit is rejected, while a call from any other thread waits
        on the lock and runs after the unit commits. Collaborators must not
        block on work they hand to another thread.
        """
        if self._busy_owner == threading.get_ident():
            logger.warning("escrow.reentrant_call_rejected", operation=operation)
            raise ReentrantCallError(operation)

        with self._lock:
            self._busy_owner = threading.get_ident()
            payments = self._payments.snapshot()
            coordinators = self._coordinators.snapshot()
            nonces = self._sequential_nonces.snapshot()
            decisions = self._release_decisions.snapshot()
            administrator = self._administrator
            sequence = self._sequence
            self._pending = []
            try:
                yield
            except Exception:
                self._payments.restore(payments)
                self._coordinators.restore(coordinators)
                self._sequential_nonces.restore(nonces)
                self._release_decisions.restore(decisions)
                self._administrator = administrator
                self._sequence = sequence
                self._pending = []
                raise
            finally:
                self._busy_owner = None

            # Committed: nothing below may raise to the caller.
            committed, self._pending = self._pending, []
            for event in committed:
                try:
                    self._events.publish(event)
                except Exception:
                    logger.exception(
                        "escrow.event_publish_failed",
                        operation=operation,
                        sequence=event.sequence,
                        event_type=event.event_type.value,
                    )
