#!/usr/bin/env python3
"""x402 Payment Escrow: End-to-End Simulation.

Simulates three scenarios with ClientBot, AgentBot and CoordinatorBot:

    Scenario 1: Happy Path
        - Client approves the escrow, coordinator deposits via allowance
        - Agent verifies the payment is locked, does the work
        - Coordinator releases -> COMPLETED, agent paid

    Scenario 2: Signed Deposit, Then Timeout
        - Client signs a ReceiveWithAuthorization (no approval needed)
        - Agent never delivers; the deadline passes
        - Anyone marks the payment EXPIRED, coordinator refunds the client

    Scenario 3: Replay and Forgery
        - Client signs one authorization, it funds one task
        - Coordinator replays the same signature for a second task -> rejected
        - An outsider forges a signature for the client -> rejected

Usage:
    uv run python simulation.py

    # Also append every event to an in-memory SQLite event store:
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --scenario 2
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field

from eth_account import Account
from eth_account.signers.local import LocalAccount

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from x402_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from x402_escrow.authorization import AuthorizationType, sign_authorization  # noqa: E402
from x402_escrow.config import Settings  # noqa: E402
from x402_escrow.domain.exceptions import EscrowError  # noqa: E402
from x402_escrow.domain.models import Authorization  # noqa: E402
from x402_escrow.encoding import random_nonce  # noqa: E402
from x402_escrow.services import EscrowServices, build_services  # noqa: E402

START_TIME = 1_700_000_000
USDC = 1_000_000  # 6 decimals


class SimulationClock:
    """Clock the scenarios move forward by hand."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds
        logger.info("⏰ CLOCK: Advanced", seconds=seconds, now=self.now)


ADMIN = Account.from_key("0x" + "0a" * 32)
COORDINATOR = Account.from_key("0x" + "0b" * 32)


def build_world(use_sqlite: bool) -> tuple[EscrowServices, SimulationClock]:
    """Fresh ledger and escrow, with the coordinator bot authorized."""
    settings = Settings(
        app_env="development",
        administrator_address=ADMIN.address,
        operator_address=COORDINATOR.address,
        coordinator_addresses=COORDINATOR.address,
        payment_timeout_seconds=3600,
        event_store_enabled=use_sqlite,
        database_url="sqlite://",
    )
    clock = SimulationClock()
    return build_services(settings, clock=clock), clock


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class ClientBot:
    """Simulated client that funds tasks, by allowance or by signature."""

    services: EscrowServices
    account: LocalAccount = field(default_factory=lambda: Account.from_key("0x" + "0c" * 32))

    @property
    def address(self) -> str:
        return self.account.address

    def top_up(self, amount: int) -> None:
        self.services.ledger.mint(self.address, amount)
        logger.info("🔵 CLIENT: Wallet funded", amount=amount)

    def approve_escrow(self, amount: int) -> None:
        self.services.ledger.approve(self.address, self.services.escrow.address, amount)
        logger.info("🔵 CLIENT: Escrow approved", amount=amount)

    def sign_deposit(self, amount: int, valid_for: int) -> tuple[Authorization, bytes]:
        """Sign a ReceiveWithAuthorization paying ``amount`` to the escrow."""
        now = self.services.escrow.now()
        authorization = Authorization(
            from_address=self.address,
            to=self.services.escrow.address,
            value=amount,
            valid_after=now - 1,
            valid_before=now + valid_for,
            nonce=random_nonce(),
        )
        signature = sign_authorization(
            self.account.key,
            self.services.ledger.domain,
            authorization,
            AuthorizationType.RECEIVE,
        )
        logger.info(
            "🔵 CLIENT: Authorization signed",
            nonce="0x" + authorization.nonce.hex()[:16] + "...",
            valid_before=authorization.valid_before,
        )
        return authorization, signature

    def balance(self) -> int:
        return self.services.ledger.balance_of(self.address)


@dataclass
class AgentBot:
    """Simulated agent that checks its payment before working."""

    services: EscrowServices
    account: LocalAccount = field(default_factory=lambda: Account.from_key("0x" + "0d" * 32))

    @property
    def address(self) -> str:
        return self.account.address

    def check_lock(self, task_id: str, min_amount: int) -> bool:
        try:
            locked = self.services.escrow.verify_payment_locked(task_id, self.address, min_amount)
        except EscrowError as exc:
            logger.info("🟢 AGENT: Payment NOT locked ❌", task_id=task_id, error=exc.code)
            return False
        logger.info("🟢 AGENT: Payment locked ✅", task_id=task_id)
        return locked

    def balance(self) -> int:
        return self.services.ledger.balance_of(self.address)


@dataclass
class CoordinatorBot:
    """Simulated coordinator that drives deposits and settlement."""

    services: EscrowServices
    account: LocalAccount = field(default_factory=lambda: COORDINATOR)

    @property
    def address(self) -> str:
        return self.account.address

    def deposit(self, task_id: str, client: ClientBot, agent: AgentBot, amount: int) -> None:
        escrow = self.services.escrow
        escrow.deposit(
            self.address, task_id, client.address, agent.address, amount, escrow.now() + 3600
        )
        logger.info("🟣 COORDINATOR: Deposit pulled via allowance", task_id=task_id)

    def deposit_signed(
        self,
        task_id: str,
        client: ClientBot,
        agent: AgentBot,
        authorization: Authorization,
        signature: bytes,
    ) -> bool:
        try:
            self.services.escrow.deposit_with_authorization(
                self.address,
                task_id,
                client.address,
                agent.address,
                authorization.value,
                authorization.valid_after,
                authorization.valid_before,
                authorization.nonce,
                signature,
            )
        except EscrowError as exc:
            logger.info("🟣 COORDINATOR: Signed deposit REJECTED ❌", task_id=task_id, error=exc.code)
            return False
        logger.info("🟣 COORDINATOR: Signed deposit accepted ✅", task_id=task_id)
        return True

    def settle_result(self, task_id: str, quality_score: float, accepted: bool) -> bool:
        escrow = self.services.escrow
        escrow.record_consensus(self.address, task_id, True, quality_score)
        escrow.record_user_acceptance(self.address, task_id, accepted)
        ready = escrow.should_release_payment(task_id)
        logger.info(
            "🟣 COORDINATOR: Release decision",
            task_id=task_id,
            quality_score=quality_score,
            accepted=accepted,
            release=ready,
        )
        return ready

    def release(self, task_id: str) -> None:
        self.services.escrow.release_payment(self.address, task_id)
        logger.info("🟣 COORDINATOR: Payment released", task_id=task_id)

    def refund(self, task_id: str) -> None:
        self.services.escrow.refund_payment(self.address, task_id)
        logger.info("🟣 COORDINATOR: Payment refunded", task_id=task_id)

    def mark_expired(self, task_id: str) -> None:
        self.services.escrow.mark_expired(self.address, task_id)
        logger.info("🟣 COORDINATOR: Payment marked expired", task_id=task_id)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_status(services: EscrowServices, task_id: str) -> None:
    status = services.escrow.get_status(task_id)
    payment = services.escrow.get_payment(task_id)
    print(f"  Status: {status['status']}")
    print(f"  Amount: {payment.amount / USDC:.2f} USDC")
    print(f"  Active: {status['active']}")
    print(f"  Next:   {', '.join(status['allowed_events']) or '(final)'}")


def print_balances(client: ClientBot, agent: AgentBot) -> None:
    escrow_balance = client.services.ledger.balance_of(client.services.escrow.address)
    print(f"  Client: {client.balance() / USDC:.2f} USDC")
    print(f"  Agent:  {agent.balance() / USDC:.2f} USDC")
    print(f"  Escrow: {escrow_balance / USDC:.2f} USDC")


def print_audit_trail(services: EscrowServices, task_id: str) -> None:
    """Print every event recorded for a task."""
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(services.event_log.for_task(task_id), 1):
        extras = ", ".join(f"{k}={v}" for k, v in evt.metadata.items())
        suffix = f" [{extras}]" if extras else ""
        print(f"    {i}. #{evt.sequence} {evt.event_type.value} -> {evt.status.value}{suffix}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
def scenario_1_happy_path(use_sqlite: bool) -> None:
    """Allowance deposit, agent checks the lock, coordinator releases."""
    banner("SCENARIO 1: Happy Path, Allowance Deposit and Release")

    services, _ = build_world(use_sqlite)
    client, agent, coordinator = ClientBot(services), AgentBot(services), CoordinatorBot(services)
    task_id = "task-translate-001"

    section("Step 1: Client funds its wallet and approves the escrow")
    client.top_up(100 * USDC)
    client.approve_escrow(50 * USDC)

    section("Step 2: Coordinator deposits")
    coordinator.deposit(task_id, client, agent, 50 * USDC)
    print_status(services, task_id)

    section("Step 3: Agent verifies the lock before working")
    assert agent.check_lock(task_id, 50 * USDC)

    section("Step 4: Validators agree and the client accepts the result")
    assert coordinator.settle_result(task_id, quality_score=0.92, accepted=True)

    section("Step 5: Coordinator releases the payment")
    coordinator.release(task_id)
    print_status(services, task_id)
    print_balances(client, agent)

    print_audit_trail(services, task_id)


# ===========================================================================
# Scenario 2: Signed Deposit, Then Timeout
# ===========================================================================
def scenario_2_timeout_refund(use_sqlite: bool) -> None:
    """Signed deposit, the deadline passes, the client gets its money back."""
    banner("SCENARIO 2: Signed Deposit, Timeout and Refund")

    services, clock = build_world(use_sqlite)
    client, agent, coordinator = ClientBot(services), AgentBot(services), CoordinatorBot(services)
    task_id = "task-summarize-002"

    section("Step 1: Client signs an authorization (no approval)")
    client.top_up(100 * USDC)
    authorization, signature = client.sign_deposit(75 * USDC, valid_for=1800)

    section("Step 2: Coordinator deposits with the signature")
    assert coordinator.deposit_signed(task_id, client, agent, authorization, signature)
    print_status(services, task_id)

    section("Step 3: The agent goes silent; 31 minutes pass")
    clock.advance(31 * 60)
    assert not agent.check_lock(task_id, 75 * USDC)

    section("Step 4: Payment marked expired, then refunded")
    coordinator.mark_expired(task_id)
    coordinator.refund(task_id)
    print_status(services, task_id)
    print_balances(client, agent)

    print_audit_trail(services, task_id)


# ===========================================================================
# Scenario 3: Replay and Forgery
# ===========================================================================
def scenario_3_replay_and_forgery(use_sqlite: bool) -> None:
    """One signature funds one task; replays and forgeries move nothing."""
    banner("SCENARIO 3: Replay and Forgery Rejected")

    services, _ = build_world(use_sqlite)
    client, agent, coordinator = ClientBot(services), AgentBot(services), CoordinatorBot(services)
    forger = ClientBot(services, account=Account.from_key("0x" + "0f" * 32))

    section("Step 1: Legitimate signed deposit")
    client.top_up(100 * USDC)
    authorization, signature = client.sign_deposit(20 * USDC, valid_for=3600)
    assert coordinator.deposit_signed("task-a", client, agent, authorization, signature)

    section("Step 2: Same signature replayed for another task")
    replayed = coordinator.deposit_signed("task-b", client, agent, authorization, signature)
    print(f"  Replay accepted: {replayed}")

    section("Step 3: Outsider signs in the client's name")
    forged_auth, _ = client.sign_deposit(20 * USDC, valid_for=3600)
    forged_sig = sign_authorization(
        forger.account.key, services.ledger.domain, forged_auth, AuthorizationType.RECEIVE
    )
    forged = coordinator.deposit_signed("task-c", client, agent, forged_auth, forged_sig)
    print(f"  Forgery accepted: {forged}")

    section("Final balances")
    print_balances(client, agent)
    print(f"\n  🛡️  task-b status: {services.escrow.get_payment('task-b').status.value}")
    print(f"  🛡️  task-c status: {services.escrow.get_payment('task-c').status.value}")

    print_audit_trail(services, "task-a")


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_timeout_refund,
    3: scenario_3_replay_and_forgery,
}


def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    print("\n" + "🚀" * 35)
    print("  x402 PAYMENT ESCROW: SIMULATION")
    print(f"  Event store: {'SQLite (in-memory)' if use_sqlite else 'disabled'}")
    print("🚀" * 35 + "\n")

    for scenario in SCENARIOS.values():
        scenario(use_sqlite)

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: 1, 2, 3")
        return
    SCENARIOS[num](use_sqlite)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="x402 Payment Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Also append events to an in-memory SQLite event store.",
    )
    args = parser.parse_args()

    try:
        if args.scenario == 0:
            run_all(use_sqlite=args.sqlite)
        else:
            run_scenario(args.scenario, use_sqlite=args.sqlite)
    finally:
        if args.sqlite:
            from x402_escrow.infrastructure.database import close_event_store

            close_event_store()
