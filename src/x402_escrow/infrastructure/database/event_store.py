"""Durable event sink backed by the payment_events table."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from x402_escrow.infrastructure.database.orm_models import PaymentEventRecord
from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from x402_escrow.domain.models import PaymentEvent

logger = get_logger(__name__)


class SqlAlchemyEventSink:
    """Appends each published event in its own transaction.

    The escrow never reads from here; ``list_for_task`` exists for audit
    queries and tests.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def publish(self, event: PaymentEvent) -> None:
        record = PaymentEventRecord(
            sequence=event.sequence,
            event_type=event.event_type.value,
            task_id=event.task_id,
            client=event.client,
            agent=event.agent,
            amount=str(event.amount),
            status=event.status.value,
            actor=event.actor,
            occurred_at=event.timestamp,
            metadata_json=dict(event.metadata) or None,
        )
        with self._session_factory.begin() as session:
            session.add(record)
        logger.debug("event_store.appended", sequence=event.sequence, event_type=event.event_type.value)

    def list_for_task(self, task_id: str) -> list[PaymentEventRecord]:
        with self._session_factory() as session:
            result = session.execute(
                select(PaymentEventRecord)
                .where(PaymentEventRecord.task_id == task_id)
                .order_by(PaymentEventRecord.sequence.asc())
            )
            return list(result.scalars().all())
