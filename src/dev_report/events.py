"""Event emission for report state changes."""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventType(str, Enum):
    """State changes published by the orchestrator."""

    snapshot_updated = "snapshot_updated"
    repository_failed = "repository_failed"
    aggregation_failed = "aggregation_failed"
    no_results = "no_results"
    session_started = "session_started"
    chunk_received = "chunk_received"
    session_terminal = "session_terminal"


class EventEmitter:
    """Minimal observer: any number of handlers per event type."""

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)

    def on(self, event: EventType, handler: Handler) -> Callable[[], None]:
        """Subscribe ``handler`` and return a function that unsubscribes it."""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def emit(self, event: EventType, payload: Any = None) -> None:
        # Copy so handlers may unsubscribe while being notified.
        for handler in list(self._handlers[event]):
            try:
                handler(payload)
            except Exception:
                logger.exception("Listener for %s failed", event.value)

    def listener_count(self, event: EventType) -> int:
        return len(self._handlers[event])

    def clear(self) -> None:
        self._handlers.clear()
