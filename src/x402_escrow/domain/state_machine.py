"""Task Payment State Machine Guard.

Uses python-statemachine to enforce legal status transitions at the domain
level. Whatever the API or a coordinator asks for, an illegal transition
(e.g. COMPLETED -> REFUNDED) raises TransitionNotAllowed before the record
is touched.

The machine is instantiated per-operation at the record's current status and
fired before the repository is updated.

Transition table:
    NONE       -> DEPOSITED   (deposit)
    DEPOSITED  -> COMPLETED   (release)
    DEPOSITED  -> REFUNDED    (refund, auto_refund)
    DEPOSITED  -> EXPIRED     (expire)
    EXPIRED    -> REFUNDED    (refund)

Deadlines are not part of the table: the service checks them against the
clock before firing release / expire / auto_refund.
"""

from __future__ import annotations

from statemachine import State, StateMachine

class PaymentStateMachine(StateMachine):
    """State machine that guards task payment lifecycle transitions.

    Usage:
        sm = PaymentStateMachine(current_status="DEPOSITED")
        sm.release()       # transitions to COMPLETED
        sm.status          # "COMPLETED"
    """

    # --- States ---
    NONE = State("NONE", initial=True)
    DEPOSITED = State("DEPOSITED")
    COMPLETED = State("COMPLETED", final=True)
    REFUNDED = State("REFUNDED", final=True)
    EXPIRED = State("EXPIRED")

    # --- Events / Transitions ---
    deposit = NONE.to(DEPOSITED)
    release = DEPOSITED.to(COMPLETED)
    refund = DEPOSITED.to(REFUNDED) | EXPIRED.to(REFUNDED)
    expire = DEPOSITED.to(EXPIRED)
    auto_refund = DEPOSITED.to(REFUNDED)

    def __init__(self, current_status: str = "NONE") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current PaymentStatus value (e.g., "DEPOSITED").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches PaymentStatus)."""
        return str(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]

