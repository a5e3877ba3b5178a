"""
Typed state-transition events for the self-healing monitors.

Delivery is synchronous and in emission order per sink, so a single monitor's
event stream preserves tick order. Subscriber failures are logged and never
reach the emitting monitor.
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("self_healing.events")


class EventType(str, Enum):
    """Event type enumeration."""
    DEGRADED = "degraded"
    CRITICAL = "critical"
    RESTORED = "restored"
    UNRECOVERABLE = "unrecoverable"
    REPAIR_SUCCESS = "repair_success"
    REPAIR_FAILED = "repair_failed"
    VALIDATION_COMPLETE = "validation_complete"
    VALIDATION_FAILED = "validation_failed"
    VALIDATION_ERROR = "validation_error"


class HealthEvent(BaseModel):
    """One state transition reported by a monitor."""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique event identifier")
    event_type: EventType = Field(..., description="Type of event")
    source: str = Field(..., description="Monitor that emitted the event (e.g. 'network', 'database')")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str = Field(default="", description="Human readable summary")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")


Subscriber = Callable[[HealthEvent], None]


class EventSink:
    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def emit(
        self,
        event_type: EventType,
        source: str,
        message: str = "",
        payload: Optional[Dict[str, Any]] = None,
    ) -> HealthEvent:
        event = HealthEvent(event_type=event_type, source=source, message=message, payload=payload or {})
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning("event subscriber failed for %s/%s: %s", source, event_type.value, e)
        return event


class RecentEvents:
    """Bounded buffer of recent events, subscribed to a sink for the dashboard."""

    def __init__(self, maxlen: int = 200) -> None:
        self._events: deque[HealthEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: HealthEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list(self, limit: int = 50, source: Optional[str] = None) -> list[HealthEvent]:
        with self._lock:
            events = [e for e in self._events if source is None or e.source == source]
        return events[-limit:] if limit > 0 else []


def log_event(event: HealthEvent) -> None:
    """Subscriber that forwards events to the application log."""
    level = logging.INFO
    if event.event_type in (EventType.CRITICAL, EventType.UNRECOVERABLE, EventType.REPAIR_FAILED):
        level = logging.ERROR
    elif event.event_type in (EventType.DEGRADED, EventType.VALIDATION_FAILED, EventType.VALIDATION_ERROR):
        level = logging.WARNING
    logger.log(level, "[%s] %s %s", event.source, event.event_type.value, event.message)
