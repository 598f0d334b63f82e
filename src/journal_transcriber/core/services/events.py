from __future__ import annotations

"""
In-Process Event Bus.

Fire-and-forget notifications from the connectivity monitor and the job
queue to any listener (CLI reporters, a future UI). Listeners run
synchronously on the emitting thread; a failing listener is logged and never
affects the emitter or other listeners.
"""

import logging
import threading
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class Event(Enum):
    """Notification names and the payload keys each one carries."""
    NETWORK_STATUS_CHANGED = "network_status_changed"      # is_connected, description
    NETWORK_QUALITY_CHANGED = "network_quality_changed"    # quality
    QUEUE_UPDATED = "queue_updated"                        # queue_size
    QUEUE_PAUSED = "queue_paused"                          # reason, queue_size
    QUEUE_STARTED = "queue_started"                        # total
    QUEUE_COMPLETED = "queue_completed"                    # report
    TRANSCRIPTION_STARTED = "transcription_started"        # job_id, index, total
    TRANSCRIPTION_PROGRESS = "transcription_progress"      # job_id, message
    TRANSCRIPTION_COMPLETED = "transcription_completed"    # job_id, outcome


class EventBus:
    """Thread-safe publish/subscribe registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: DefaultDict[Event, List[Listener]] = defaultdict(list)

    def subscribe(self, event: Event, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable[[], None]: Unsubscribe handle.
        """
        with self._lock:
            self._listeners[event].append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(event, listener)

        return _unsubscribe

    def unsubscribe(self, event: Event, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

    def emit(self, event: Event, **payload: Any) -> None:
        """Deliver `payload` to a snapshot of the current listeners."""
        with self._lock:
            listeners = list(self._listeners[event])

        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception(f"EventBus: listener for '{event.value}' failed.")

    def listener_count(self, event: Event) -> int:
        with self._lock:
            return len(self._listeners[event])
