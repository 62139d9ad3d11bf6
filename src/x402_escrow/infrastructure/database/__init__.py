"""Database infrastructure - engine, ORM model, and the durable event sink."""

from x402_escrow.infrastructure.database.engine import (
    close_event_store,
    create_event_store_engine,
    create_session_factory,
    init_event_store,
)
from x402_escrow.infrastructure.database.event_store import SqlAlchemyEventSink
from x402_escrow.infrastructure.database.orm_models import Base, PaymentEventRecord

__all__ = [
    "Base",
    "PaymentEventRecord",
    "SqlAlchemyEventSink",
    "close_event_store",
    "create_event_store_engine",
    "create_session_factory",
    "init_event_store",
]
