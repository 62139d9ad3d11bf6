"""Event sinks: where escrow notifications go after an operation commits."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from x402_escrow.domain.models import PaymentEvent
    from x402_escrow.domain.protocols import EventSink

logger = get_logger(__name__)


class InMemoryEventSink:
    """Keeps every published event in order. Used by the API and the tests."""

    def __init__(self) -> None:
        self._events: list[PaymentEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: PaymentEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> tuple[PaymentEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def for_task(self, task_id: str) -> list[PaymentEvent]:
        with self._lock:
            return [e for e in self._events if e.task_id == task_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingEventSink:
    """Writes each event as a structured log line."""

    def publish(self, event: PaymentEvent) -> None:
        logger.info(
            "escrow.event",
            event_type=event.event_type.value,
            sequence=event.sequence,
            task_id=event.task_id,
            client=event.client,
            agent=event.agent,
            amount=event.amount,
            status=event.status.value,
            actor=event.actor,
            **event.metadata,
        )


class FanOutEventSink:
    """Publishes every event to each wrapped sink, in order.

    A failing sink is logged and skipped; the remaining sinks still receive
    the event.
    """

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks = list(sinks)

    def publish(self, event: PaymentEvent) -> None:
        for sink in self._sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception(
                    "event_sink.publish_failed",
                    sink=type(sink).__name__,
                    sequence=event.sequence,
                    event_type=event.event_type.value,
                )
