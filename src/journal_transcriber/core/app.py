from __future__ import annotations

"""
Application Coordinator.

Builds and owns the process-wide components: the event bus, the
connectivity monitor, the protocol client, the recording store and the
transcription queue. Ownership flows one way (coordinator -> queue ->
monitor/client); `shutdown` tears everything down in reverse order.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from journal_transcriber.core.services.connectivity import ConnectivityMonitor
from journal_transcriber.core.services.events import Event, EventBus
from journal_transcriber.core.services.recording_store import JsonRecordingStore
from journal_transcriber.core.services.transcription_queue import TranscriptionQueue
from journal_transcriber.core.validator import validate_settings
from journal_transcriber.domain.config import load_settings
from journal_transcriber.infra.fs import get_user_data_dir
from journal_transcriber.infra.network.transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)


class TranscriptionApp:
    """
    Single-instance coordinator for the transcription subsystem.

    Args:
        settings: Validated settings dictionary.
        data_dir: Root for the queue snapshot and the recording store.
        session: HTTP session shared by the client (defaults to requests).
        monitor: Pre-built monitor (tests inject one with a fake probe).
        client: Pre-built protocol client.
        store: Pre-built recording store.
    """

    def __init__(
            self,
            settings: Dict[str, Any],
            *,
            data_dir: Optional[str] = None,
            session: Optional[Any] = None,
            monitor: Optional[ConnectivityMonitor] = None,
            client: Optional[TranscriptionClient] = None,
            store: Optional[JsonRecordingStore] = None,
    ) -> None:
        self.settings = settings
        self.data_dir = data_dir or get_user_data_dir()

        if monitor is not None:
            self.events = monitor.events
            self.monitor = monitor
        else:
            self.events = EventBus()
            self.monitor = ConnectivityMonitor.from_settings(settings, self.events)

        self.client = client or TranscriptionClient.from_settings(settings, session=session)
        self.store = store or JsonRecordingStore(self.data_dir)
        self.queue = TranscriptionQueue(
            self.store,
            self.client,
            self.monitor,
            self.events,
            data_dir=self.data_dir,
            retry_delay=float(settings["retry_delay_seconds"]),
            refine_transcripts=bool(settings["refine_transcripts"]),
            refinement_prompt=settings["refinement_prompt"],
        )

        self._subscriptions: List[Callable[[], None]] = []
        self._started = False

    @classmethod
    def from_config(cls, config_file: Optional[str] = None, **kwargs: Any) -> "TranscriptionApp":
        """Load, validate and apply the persisted settings."""
        settings, warnings = validate_settings(load_settings(config_file))
        for w in warnings:
            logger.warning(f"Configuration Constraint: {w}")
        return cls(settings, **kwargs)

    # --- Lifecycle ---

    def start(self, watch_network: bool = True) -> None:
        """
        Bring the subsystem up.

        Args:
            watch_network: Start the background reachability watcher. When
                           False the caller feeds `monitor.update_reachability`.
        """
        if self._started:
            return
        self._started = True
        self._subscriptions.append(self.events.subscribe(Event.QUEUE_PAUSED, self._log_pause))
        self.queue.start()
        if watch_network:
            self.monitor.start()
        logger.info(f"TranscriptionApp: Started (data dir: {self.data_dir}).")

    def shutdown(self) -> None:
        if not self._started:
            self.queue.shutdown()
            return
        self._started = False
        self.monitor.stop()
        self.queue.shutdown()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        logger.info("TranscriptionApp: Shut down.")

    def subscribe(self, event: Event, listener: Callable[[Dict[str, Any]], None]) -> None:
        """Register a listener that is removed on shutdown."""
        self._subscriptions.append(self.events.subscribe(event, listener))

    def __enter__(self) -> "TranscriptionApp":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # --- Listeners ---

    @staticmethod
    def _log_pause(payload: Dict[str, Any]) -> None:
        logger.debug(
            f"TranscriptionApp: Queue paused ({payload.get('reason')}), "
            f"{payload.get('queue_size')} waiting."
        )
