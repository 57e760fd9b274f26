"""Event publisher - hands serialized events to a sink."""
from datetime import datetime
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

EventSink = Callable[[str, str], None]


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def _log_sink(event_type: str, payload: str) -> None:
    logger.info(f"event:{event_type} {payload}")


class EventPublisher:
    """
    Publishes domain events as JSON.

    The sink receives ``(event_type, payload_json)``; the default one only
    logs. Sink failures are logged and never propagate into the operation
    that produced the event.
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink or _log_sink

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        try:
            self.sink(event_type, json.dumps(payload))
        except Exception as exc:
            logger.error(f"Failed to publish {event_type}: {exc}", exc_info=True)


class RecordingSink:
    """Sink that keeps published events in memory, in publish order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event_type: str, payload: str) -> None:
        self.events.append((event_type, json.loads(payload)))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_type]
