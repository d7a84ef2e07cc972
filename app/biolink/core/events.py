"""
Callback fan-out for decoded samples, status transitions and link events.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from biolink.utils.logging import get_logger

# Initialize module logger
logger = get_logger(__name__)

class LinkEventKind(Enum):
    """Kinds of observability events published by the connection manager."""
    STATE_CHANGED = "state_changed"
    DECODE_FAILED = "decode_failed"
    HEARTBEAT_STALE = "heartbeat_stale"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    TRANSPORT_ERROR = "transport_error"
    COMMAND_REJECTED = "command_rejected"
    COMMAND_FAILED = "command_failed"

@dataclass(frozen=True)
class LinkEvent:
    """One structured observability event."""
    kind: LinkEventKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

class CallbackList:
    """
    Ordered list of callbacks with snapshot dispatch.

    Callbacks run in registration order. Each dispatch iterates over a copy
    of the registrations taken when the dispatch starts, so callbacks may
    subscribe or unsubscribe (themselves or others) while it runs.
    """

    def __init__(self, name: str):
        self._name = name
        self._entries: List[Tuple[object, Callable]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """
        Register a callback.

        Args:
            callback: Function to call on every dispatch

        Returns:
            Callable: Function removing exactly this registration; calling it
            again is a no-op
        """
        if not callable(callback):
            raise TypeError(f"{self._name} callback must be callable")

        token = object()
        self._entries.append((token, callback))
        logger.debug("Registered %s callback %r", self._name, callback)

        def unsubscribe() -> None:
            for index, (entry_token, _) in enumerate(self._entries):
                if entry_token is token:
                    # Rebind instead of mutating so running snapshots are untouched
                    self._entries = self._entries[:index] + self._entries[index + 1:]
                    logger.debug("Unregistered %s callback %r", self._name, callback)
                    return

        return unsubscribe

    def dispatch(self, *args) -> None:
        """Call every registered callback with ``args``."""
        snapshot = tuple(self._entries)
        for _, callback in snapshot:
            try:
                callback(*args)
            except Exception as e:
                logger.error("Error in %s callback %r: %s", self._name, callback, str(e),
                             exc_info=True)

    def clear(self) -> None:
        self._entries = []

class SubscriberRegistry:
    """Independent callback lists for samples, status changes and link events."""

    def __init__(self):
        self.signal = CallbackList("signal")
        self.status = CallbackList("status")
        self.events = CallbackList("event")

    def subscribe_signal(self, callback: Callable) -> Callable[[], None]:
        return self.signal.subscribe(callback)

    def subscribe_status(self, callback: Callable) -> Callable[[], None]:
        return self.status.subscribe(callback)

    def subscribe_events(self, callback: Callable) -> Callable[[], None]:
        return self.events.subscribe(callback)

    def emit_signal(self, sample) -> None:
        self.signal.dispatch(sample)

    def emit_status(self, state) -> None:
        self.status.dispatch(state)

    def emit_event(self, kind: LinkEventKind, message: str, **details) -> LinkEvent:
        event = LinkEvent(kind, message, details)
        self.events.dispatch(event)
        return event

    def clear(self) -> None:
        """Drop every registration."""
        self.signal.clear()
        self.status.clear()
        self.events.clear()
