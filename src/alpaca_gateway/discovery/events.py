"""
Event system for the Alpaca Gateway.

Registry and discovery mutations are published as typed ``Event`` variants.
Two channels are fed from the same variant:

- typed listeners (``add_listener``) receive the ``Event`` itself
- string handlers (``on``) receive ``event.name`` and the positional
  arguments projected from the event payload

While a batch is open, deliveries are queued in order and flushed by the
outermost ``end()``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import ValidationError

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published by the gateway."""
    # Registry events
    DEVICE_ADDED = "deviceAdded"
    DEVICE_REMOVED = "deviceRemoved"
    DEVICE_UPDATED = "deviceUpdated"
    DEVICE_PROPERTY_CHANGED = "devicePropertyChanged"

    # Connection events
    DEVICE_CONNECTED = "deviceConnected"
    DEVICE_DISCONNECTED = "deviceDisconnected"
    DEVICE_CONNECTION_ERROR = "deviceConnectionError"

    # Discovery events
    DISCOVERY_STARTED = "discoveryStarted"
    DISCOVERY_STOPPED = "discoveryStopped"
    DISCOVERY_DEVICE_FOUND = "discoveryDeviceFound"
    DISCOVERY_COMPLETED = "discoveryCompleted"
    DISCOVERY_ERROR = "discoveryError"
    DEVICES_AUTO_ADDED = "devicesAutoAdded"


# Payload keys of each variant, in string-channel argument order
EVENT_ARGS: Dict[EventType, Tuple[str, ...]] = {
    EventType.DEVICE_ADDED: ("device",),
    EventType.DEVICE_REMOVED: ("device_id",),
    EventType.DEVICE_UPDATED: ("device_id", "updates"),
    EventType.DEVICE_PROPERTY_CHANGED: ("device_id", "property", "value"),
    EventType.DEVICE_CONNECTED: ("device_id",),
    EventType.DEVICE_DISCONNECTED: ("device_id",),
    EventType.DEVICE_CONNECTION_ERROR: ("device_id", "error"),
    EventType.DISCOVERY_STARTED: (),
    EventType.DISCOVERY_STOPPED: (),
    EventType.DISCOVERY_DEVICE_FOUND: ("device",),
    EventType.DISCOVERY_COMPLETED: ("devices",),
    EventType.DISCOVERY_ERROR: ("error",),
    EventType.DEVICES_AUTO_ADDED: ("count", "names"),
}

_EVENT_TYPES_BY_NAME = {event_type.value: event_type for event_type in EventType}


@dataclass
class Event:
    """Event data structure."""
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "alpaca_gateway"

    @classmethod
    def create(cls, event_type: EventType, *args: Any, source: str = "alpaca_gateway") -> "Event":
        """Build an event from string-channel style positional arguments."""
        keys = EVENT_ARGS[event_type]
        if len(args) != len(keys):
            raise ValidationError(
                f"Event {event_type.value} expects {len(keys)} argument(s), got {len(args)}"
            )
        return cls(event_type=event_type, data=dict(zip(keys, args)), source=source)

    @property
    def name(self) -> str:
        return self.event_type.value

    @property
    def device_id(self) -> Optional[str]:
        """Id of the device this event concerns, if any."""
        if "device_id" in self.data:
            return self.data["device_id"]
        device = self.data.get("device")
        if isinstance(device, dict):
            return device.get("id")
        return None

    def as_args(self) -> Tuple[Any, ...]:
        """Positional arguments for the string channel."""
        return tuple(self.data.get(key) for key in EVENT_ARGS[self.event_type])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


Listener = Callable[[Event], None]
Handler = Callable[..., None]

# (typed event or None, string name, positional args)
_Delivery = Tuple[Optional[Event], str, Tuple[Any, ...]]


class EventBatch:
    """
    Batching scope over an EventBus.

    Usage:
        batch = bus.batch()
        batch.start()
        try:
            ...
        finally:
            batch.end()

    or simply ``with bus.batch(): ...``.
    """

    def __init__(self, bus: "EventBus"):
        self._bus = bus

    def start(self) -> None:
        self._bus._begin_batch()

    def end(self) -> None:
        self._bus._end_batch()

    def queue(self, event: Event) -> None:
        """Enqueue an event directly; dispatched immediately when not batching."""
        self._bus.publish(event)

    def __enter__(self) -> "EventBatch":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()


class EventBus:
    """Central event bus for registry and discovery notifications."""

    def __init__(self, max_history: int = 1000):
        self._listeners: List[Listener] = []
        self._handlers: Dict[str, List[Handler]] = {}
        self._queue: List[_Delivery] = []
        self._batch_depth = 0
        self._flushing = False
        self._event_history: List[Event] = []
        self._max_history = max_history

    # ---- typed channel ----

    def add_listener(self, listener: Listener) -> None:
        """Register a typed listener receiving every Event."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ---- string channel ----

    def on(self, name: str, handler: Handler) -> None:
        """Register a handler for a string-named event."""
        self._handlers.setdefault(name, []).append(handler)
        logger.debug(f"Subscribed to {name}")

    def off(self, name: str, handler: Handler) -> None:
        handlers = self._handlers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, name: str, *args: Any) -> None:
        """
        Emit a string-named event.

        Known names are turned into the typed variant and published on both
        channels. Other names only reach string handlers.
        """
        event_type = _EVENT_TYPES_BY_NAME.get(name)
        if event_type is not None:
            self.publish(Event.create(event_type, *args))
        else:
            self._deliver_or_queue((None, name, args))

    # ---- publishing ----

    def publish(self, event: Event) -> None:
        """Publish a typed event on both channels."""
        self._deliver_or_queue((event, event.name, event.as_args()))

    def batch(self) -> EventBatch:
        return EventBatch(self)

    @property
    def is_batching(self) -> bool:
        return self._batch_depth > 0

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def get_recent_events(self, count: int = 50) -> List[Event]:
        """Get recent delivered events."""
        return self._event_history[-count:]

    # ---- internals ----

    def _begin_batch(self) -> None:
        self._batch_depth += 1

    def _end_batch(self) -> None:
        if self._batch_depth == 0:
            logger.warning("Event batch ended without a matching start")
            return

        self._batch_depth -= 1
        if self._batch_depth > 0:
            return

        if self._flushing:
            return

        # Deliveries published by listeners during the flush join the queue tail
        self._flushing = True
        try:
            if self._queue:
                logger.debug(f"Flushing {len(self._queue)} batched event(s)")
            while self._queue:
                self._deliver(self._queue.pop(0))
        finally:
            self._flushing = False

    def _deliver_or_queue(self, delivery: _Delivery) -> None:
        if self.is_batching or self._flushing:
            self._queue.append(delivery)
        else:
            self._deliver(delivery)

    def _deliver(self, delivery: _Delivery) -> None:
        event, name, args = delivery

        if event is not None:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history.pop(0)

            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Error in event listener for {name}: {e}")

        for handler in list(self._handlers.get(name, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Error in event handler for {name}: {e}")

        logger.debug(f"Emitted event: {name}")
