"""Event sink port: publishes integration events to interested parties.

Delivery is in-process, at-most-once and best effort. An observer that
raises is logged and skipped; it never fails the operation that published.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_UPDATED = "order.status_updated"
ORDER_CANCELLED = "order.cancelled"
INVENTORY_LOW_STOCK = "inventory.low-stock"


@dataclass(frozen=True)
class PublishedEvent:
    name: str
    payload: dict
    published_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventSink(ABC):
    @abstractmethod
    def publish(self, name: str, payload: dict) -> None:
        ...


class InMemoryEventSink(EventSink):
    """Keeps every published event and fans it out to subscribed observers."""

    def __init__(self) -> None:
        self.published: list[PublishedEvent] = []
        self._observers: list[tuple[str | None, Callable[[PublishedEvent], None]]] = []

    def subscribe(self, observer: Callable[[PublishedEvent], None], name: str | None = None) -> None:
        """Register an observer for one event name, or for all events when ``name`` is None."""
        self._observers.append((name, observer))

    def publish(self, name: str, payload: dict) -> None:
        event = PublishedEvent(name=name, payload=dict(payload))
        self.published.append(event)
        logger.info("Event published", event_name=name)

        for wanted, observer in self._observers:
            if wanted is not None and wanted != name:
                continue
            try:
                observer(event)
            except Exception as exc:
                logger.warning("Event observer failed", event_name=name, error=str(exc))

    def named(self, name: str) -> list[PublishedEvent]:
        return [e for e in self.published if e.name == name]
