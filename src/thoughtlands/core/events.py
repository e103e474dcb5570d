"""
Progress notifications for long-running operations.

Resolution runs emit ``{step, details}`` updates and embedding builds emit
per-note progress. Subscribers are plain callables; a failing subscriber
is logged and never interrupts the operation that published the event.
"""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)


class EventTypes:
    """Event type names published by Thoughtlands services."""
    RESOLUTION_STEP = "resolution.step"
    RESOLUTION_FINISHED = "resolution.finished"
    RESOLUTION_FAILED = "resolution.failed"
    EMBEDDING_PROGRESS = "embedding.progress"
    EMBEDDING_BUILD_COMPLETE = "embedding.build_complete"


@dataclass
class Event:
    """Represents an event in the system."""
    event_type: str
    data: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary."""
        return {
            'event_id': self.event_id,
            'event_type': self.event_type,
            'data': self.data,
            'timestamp': self.timestamp,
            'source': self.source,
        }


EventHandler = Callable[[Event], None]


class ProgressNotifier:
    """Synchronous publish/subscribe hub for progress events."""

    def __init__(self):
        self._subscribers: dict[str, tuple[EventHandler, set[str] | None]] = {}
        self._history: list[Event] = []
        self.max_history = 200

    def subscribe(self, handler: EventHandler, event_types: set[str] | None = None) -> str:
        """Register a handler; returns an id for ``unsubscribe``."""
        subscription_id = str(uuid.uuid4())
        self._subscribers[subscription_id] = (handler, event_types)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._subscribers.pop(subscription_id, None) is not None

    def publish(self, event_type: str, data: dict[str, Any], source: str | None = None) -> Event:
        """Deliver an event to every matching subscriber."""
        event = Event(event_type=event_type, data=data, source=source)
        self._history.append(event)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.max_history:]

        for handler, event_types in list(self._subscribers.values()):
            if event_types and event_type not in event_types:
                continue
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Progress subscriber failed for {event_type}: {e}")
        return event

    def step(self, step: str, details: str = "", source: str | None = None) -> Event:
        """Publish a resolution step update."""
        logger.info(f"{step} {details}".strip())
        return self.publish(EventTypes.RESOLUTION_STEP, {"step": step, "details": details}, source)

    def history(self, event_type: str | None = None) -> list[Event]:
        """Recently published events, oldest first."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.event_type == event_type]
