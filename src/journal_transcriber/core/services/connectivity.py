from __future__ import annotations

"""
Connectivity & Quality Monitoring Service.

Tracks whether the network is reachable and how usable it is for uploading
audio. Reachability changes arrive through `update_reachability` (fed by the
background watcher thread, or by a host platform's own signal). Usability
is estimated by an active latency probe and classified into
`NetworkQuality` tiers. Every change is broadcast on the event bus so the
job queue can reconsider gating. The monitor never raises: probe failures
simply yield `POOR` for that cycle.
"""

import logging
import socket
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from journal_transcriber.core.services.events import Event, EventBus
from journal_transcriber.domain import constants as const
from journal_transcriber.domain.network_models import NetworkQuality
from journal_transcriber.infra.network.probe_client import measure_round_trip

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str, float], Tuple[bool, float]]
ReachabilityFn = Callable[[], bool]


# -----------------------------------------------------------------------------
# CLASSIFICATION
# -----------------------------------------------------------------------------

def classify_latency(latency_ms: float) -> NetworkQuality:
    """
    Map a successful probe round-trip to a quality tier.

    Args:
        latency_ms: Measured round-trip in milliseconds.

    Returns:
        NetworkQuality: EXCELLENT (<150), GOOD (<400), FAIR (<1000), else POOR.
    """
    if latency_ms < const.LATENCY_EXCELLENT_MS:
        return NetworkQuality.EXCELLENT
    if latency_ms < const.LATENCY_GOOD_MS:
        return NetworkQuality.GOOD
    if latency_ms < const.LATENCY_FAIR_MS:
        return NetworkQuality.FAIR
    return NetworkQuality.POOR


def tcp_reachability_check(
        host: str = const.REACHABILITY_HOST,
        port: int = const.REACHABILITY_PORT,
        timeout: float = const.REACHABILITY_TIMEOUT,
) -> bool:
    """Return True if a TCP connection to host:port can be opened."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


# -----------------------------------------------------------------------------
# MONITOR SERVICE
# -----------------------------------------------------------------------------

class ConnectivityMonitor:
    """
    Owner of connectivity and quality state.

    One instance per process, owned by the application coordinator.

    Args:
        events: Bus receiving NETWORK_STATUS_CHANGED / NETWORK_QUALITY_CHANGED.
        probe_url: Small, reliable URL timed by the quality probe.
        probe_timeout: Probe timeout in seconds.
        quality_test_interval: Minimum seconds between unforced probes while
                               quality is fair or better.
        session: HTTP session used by the probe (defaults to requests).
        probe: Override for the probe function `(url, timeout) -> (ok, ms)`.
        reachability_check: Callable polled by the watcher thread.
        poll_interval: Seconds between reachability polls.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
            self,
            events: Optional[EventBus] = None,
            *,
            probe_url: str = const.QUALITY_PROBE_URL,
            probe_timeout: float = const.PROBE_TIMEOUT,
            quality_test_interval: float = const.QUALITY_TEST_INTERVAL,
            session: Optional[Any] = None,
            probe: Optional[ProbeFn] = None,
            reachability_check: Optional[ReachabilityFn] = None,
            poll_interval: float = const.REACHABILITY_POLL_INTERVAL,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.events = events or EventBus()
        self.probe_url = probe_url
        self.probe_timeout = probe_timeout
        self.quality_test_interval = quality_test_interval
        self.poll_interval = poll_interval
        self._session = session
        self._probe = probe or self._default_probe
        self._reachability_check = reachability_check or tcp_reachability_check
        self._clock = clock

        self._lock = threading.Lock()
        self._is_connected = False
        self._quality = NetworkQuality.UNKNOWN
        self._is_testing = False
        self._last_test_mono: Optional[float] = None
        self._last_test_at: Optional[datetime] = None
        self._description = "Initializing..."

        self._stop_event = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    @classmethod
    def from_settings(cls, settings: dict, events: Optional[EventBus] = None) -> "ConnectivityMonitor":
        host = settings["reachability_host"]
        port = int(settings["reachability_port"])
        return cls(
            events,
            probe_url=settings["quality_probe_url"],
            reachability_check=lambda: tcp_reachability_check(host, port),
            poll_interval=float(settings["reachability_interval_seconds"]),
        )

    # --- State accessors ---

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._is_connected

    @property
    def quality(self) -> NetworkQuality:
        with self._lock:
            return self._quality

    @property
    def is_testing_quality(self) -> bool:
        with self._lock:
            return self._is_testing

    @property
    def last_quality_test_at(self) -> Optional[datetime]:
        with self._lock:
            return self._last_test_at

    @property
    def connection_description(self) -> str:
        with self._lock:
            return self._description

    @property
    def can_transcribe(self) -> bool:
        """Connected and the last known quality is fair or better."""
        with self._lock:
            return self._is_connected and self._quality.usable_for_transcription

    # --- Reachability ---

    def update_reachability(self, connected: bool, description: Optional[str] = None) -> None:
        """
        Path-change handler.

        false -> true: quality reset to UNKNOWN, then an immediate forced probe.
        true -> false: quality set to POOR without probing.
        true -> true: probe only if the throttle allows it.
        """
        with self._lock:
            was_connected = self._is_connected
            self._is_connected = connected
            self._description = description or ("Connected" if connected else "Disconnected")
            if was_connected != connected:
                self._quality = NetworkQuality.UNKNOWN if connected else NetworkQuality.POOR
                if connected:
                    self._last_test_mono = None

        logger.debug(f"NetworkMonitor: Path update. Connected: {connected} ({self.connection_description})")

        if was_connected == connected:
            if connected:
                self.test_quality_if_needed()
            return

        self.events.emit(
            Event.NETWORK_STATUS_CHANGED,
            is_connected=connected,
            description=self.connection_description,
        )

        if connected:
            logger.info("NetworkMonitor: Connection established. Testing quality.")
            self.test_quality(force=True)
        else:
            logger.info("NetworkMonitor: Connection lost. Quality set to Poor.")
            self.events.emit(Event.NETWORK_QUALITY_CHANGED, quality=NetworkQuality.POOR)

    # --- Quality probing ---

    def test_quality_if_needed(self) -> NetworkQuality:
        """Probe unless a recent probe reported fair or better."""
        return self.test_quality(force=False)

    def test_quality(self, force: bool = False) -> NetworkQuality:
        """
        Measure round-trip latency and update the quality tier.

        Skips the request when a probe ran within `quality_test_interval` and
        quality is neither UNKNOWN nor POOR, unless `force` is set. Only one
        probe runs at a time; concurrent callers get the last known value.

        Returns:
            NetworkQuality: The current (possibly updated) quality.
        """
        with self._lock:
            if not self._is_connected:
                changed = self._quality != NetworkQuality.POOR
                self._quality = NetworkQuality.POOR
            elif self._is_throttled(force) or self._is_testing:
                logger.debug(
                    f"NetworkMonitor: Probe skipped (testing={self._is_testing}, "
                    f"quality={self._quality})."
                )
                return self._quality
            else:
                self._is_testing = True
                changed = None

        if changed is not None:
            logger.debug("NetworkMonitor: Probe skipped, not connected.")
            if changed:
                self.events.emit(Event.NETWORK_QUALITY_CHANGED, quality=NetworkQuality.POOR)
            return NetworkQuality.POOR

        new_quality = NetworkQuality.POOR
        try:
            ok, latency_ms = self._probe(self.probe_url, self.probe_timeout)
            if ok:
                new_quality = classify_latency(latency_ms)
            logger.info(
                f"NetworkMonitor: Probe {'succeeded' if ok else 'failed'} "
                f"in {latency_ms:.0f}ms -> {new_quality}."
            )
        except Exception as e:
            logger.warning(f"NetworkMonitor: Probe raised {type(e).__name__}: {e}")
        finally:
            with self._lock:
                self._is_testing = False
                self._last_test_mono = self._clock()
                self._last_test_at = datetime.now(timezone.utc)
                previous = self._quality
                # A disconnect during the probe keeps the pessimistic value
                if self._is_connected:
                    self._quality = new_quality
                current = self._quality

        if current != previous:
            logger.info(f"NetworkMonitor: Quality changed from {previous} to {current}.")
            self.events.emit(Event.NETWORK_QUALITY_CHANGED, quality=current)
        return current

    def check_network_for_transcription(self) -> Tuple[bool, str]:
        """
        Decide whether a transcription upload should be attempted now.

        Returns:
            Tuple[bool, str]: (can proceed, human-readable reason).
        """
        if not self.is_connected:
            return False, "No internet connection."

        quality = self.test_quality(force=False)
        if quality.usable_for_transcription:
            return True, f"Network quality: {quality}"
        return False, (
            f"Network quality is too poor for transcription ({quality}). "
            "Please check your connection."
        )

    # --- Watcher lifecycle ---

    def start(self) -> None:
        """Start the background reachability watcher (idempotent)."""
        if self._watcher is not None and self._watcher.is_alive():
            return
        self._stop_event.clear()
        self._watcher = threading.Thread(
            target=self._watch_loop, name="reachability-watcher", daemon=True
        )
        self._watcher.start()
        logger.debug("NetworkMonitor: Watcher started.")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the watcher and wait for it to exit."""
        self._stop_event.set()
        if self._watcher is not None:
            self._watcher.join(timeout)
            self._watcher = None
        logger.debug("NetworkMonitor: Watcher stopped.")

    def poll_once(self) -> bool:
        """Run one reachability check and feed the result to the path handler."""
        try:
            connected = bool(self._reachability_check())
        except Exception as e:
            logger.warning(f"NetworkMonitor: Reachability check raised {type(e).__name__}: {e}")
            connected = False
        self.update_reachability(connected)
        return connected

    # --- Internals ---

    def _watch_loop(self) -> None:
        # The first poll flips the initial "disconnected" state, which
        # triggers the initial forced probe.
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.poll_interval)

    def _is_throttled(self, force: bool) -> bool:
        if force or self._last_test_mono is None:
            return False
        if self._quality in (NetworkQuality.UNKNOWN, NetworkQuality.POOR):
            return False
        return (self._clock() - self._last_test_mono) < self.quality_test_interval

    def _default_probe(self, url: str, timeout: float) -> Tuple[bool, float]:
        return measure_round_trip(url, timeout, session=self._session, clock=self._clock)
