"""SQLAlchemy 2.0 ORM model for the durable payment event log.

One table:
    payment_events - append-only copy of every PaymentEvent the escrow publishes.

Design decisions:
    - Amounts stored as decimal strings (uint256 does not fit any SQL integer).
    - Generic JSON column for metadata, so the table works on SQLite and Postgres.
    - Indexes on the audit query columns (task_id, event_type).
    - No UPDATE or DELETE at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class PaymentEventRecord(Base):
    """Immutable audit record of one escrow notification."""

    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-escrow event sequence number",
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., PAYMENT_DEPOSITED)",
    )
    task_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    client: Mapped[str] = mapped_column(String(42), nullable=False)
    agent: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[str] = mapped_column(
        String(78),
        nullable=False,
        comment="Amount in base units, decimal string",
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Address of the caller that triggered the event",
    )
    occurred_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Escrow clock time (unix seconds)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=None,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_payment_events_task", "task_id"),
        Index("idx_payment_events_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<PaymentEventRecord seq={self.sequence} type={self.event_type} task={self.task_id}>"
