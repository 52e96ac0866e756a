"""Append-only log of ledger events with synchronous subscribers."""

import logging
import threading
from typing import Callable, List, Optional, Sequence

from microlend.models.enums import LedgerEventType
from microlend.models.events import LedgerEvent


logger = logging.getLogger(__name__)

EventSubscriber = Callable[[LedgerEvent], None]


class EventLog:
    """Store published events in order and fan them out to subscribers.

    Subscribers are observers only: an exception raised by one is logged
    and does not reach the ledger call that published the event.
    """

    def __init__(self) -> None:
        self._events: List[LedgerEvent] = []
        self._subscribers: List[EventSubscriber] = []
        self._lock = threading.RLock()

    def subscribe(self, subscriber: EventSubscriber) -> Callable[[], None]:
        """Register ``subscriber`` and return a function that removes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return _unsubscribe

    def publish(self, events: Sequence[LedgerEvent]) -> List[LedgerEvent]:
        """Assign sequence numbers, append, and notify subscribers."""
        with self._lock:
            published = []
            for event in events:
                stamped = event.model_copy(update={"sequence": len(self._events)})
                self._events.append(stamped)
                published.append(stamped)
            subscribers = list(self._subscribers)

        for stamped in published:
            logger.info("Event %s seq=%s subject=%s", stamped.name.value, stamped.sequence, stamped.subject)
            for subscriber in subscribers:
                try:
                    subscriber(stamped)
                except Exception:
                    logger.exception("Event subscriber failed event=%s seq=%s", stamped.name.value, stamped.sequence)
        return published

    def events(
        self,
        name: Optional[LedgerEventType] = None,
        subject: Optional[str] = None,
        since: int = 0,
    ) -> List[LedgerEvent]:
        """Return events in publication order, optionally filtered.

        Args:
            name: Only events of this type.
            subject: Only events about this borrower address or external id
                (case-insensitive).
            since: Only events with ``sequence >= since``.
        """
        wanted_subject = subject.strip().lower() if subject else None
        with self._lock:
            selected = self._events[since:] if since > 0 else list(self._events)
        if name is not None:
            selected = [event for event in selected if event.name == name]
        if wanted_subject is not None:
            selected = [event for event in selected if event.subject.strip().lower() == wanted_subject]
        return selected

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
