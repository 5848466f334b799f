"""
Notification Sink - Transition Events for Downstream Delivery

One event per transition. Delivery is fire-and-forget with a bounded local
retry: a failing sink never blocks or fails the transition. Events that
exhaust their retries are parked in a dead-letter list for operators.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    """A single entity transition."""

    entity_type: str
    entity_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationSink(Protocol):
    """Anything that can accept a transition event."""

    def send(self, event: TransitionEvent) -> None:
        ...


class InMemoryNotificationSink:
    """Collects events in memory."""

    def __init__(self) -> None:
        self.events: list[TransitionEvent] = []

    def send(self, event: TransitionEvent) -> None:
        self.events.append(event)


class LoggingNotificationSink:
    """Writes events to the log. Default sink when no delivery service is wired."""

    def send(self, event: TransitionEvent) -> None:
        logger.info(
            "Notify %s %s: %s -> %s by %s",
            event.entity_type,
            event.entity_id,
            event.from_status,
            event.to_status,
            event.actor_id,
        )


class NotificationDispatcher:
    """
    Delivers events to a sink with bounded retry.

    publish() never raises.
    """

    def __init__(self, sink: NotificationSink, max_retries: int = 3):
        self.sink = sink
        self.max_retries = max(0, max_retries)
        self.dead_letters: list[TransitionEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: TransitionEvent) -> bool:
        """
        Deliver an event.

        Returns:
            True if delivered, False if parked as a dead letter
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                self.sink.send(event)
                return True
            except Exception as e:
                logger.warning(
                    "Notification delivery failed for %s %s (attempt %d/%d): %s",
                    event.entity_type,
                    event.entity_id,
                    attempt,
                    attempts,
                    e,
                )

        with self._lock:
            self.dead_letters.append(event)
        logger.error(
            "Notification for %s %s parked after %d attempts",
            event.entity_type,
            event.entity_id,
            attempts,
        )
        return False

    def redeliver(self) -> int:
        """Retry parked events once. Returns the number delivered."""
        with self._lock:
            parked, self.dead_letters = self.dead_letters, []

        delivered = 0
        for event in parked:
            try:
                self.sink.send(event)
                delivered += 1
            except Exception as e:
                logger.warning("Redelivery failed for %s %s: %s", event.entity_type, event.entity_id, e)
                with self._lock:
                    self.dead_letters.append(event)
        return delivered
