from __future__ import annotations

"""
Unit tests for the Connectivity & Quality Monitor.

Validates latency classification, probe throttling, reachability
transitions and the events broadcast on every change. No real network
access: probes are scripted and the clock is controlled.
"""

from typing import Any, Dict, List
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import FakeProbe
from journal_transcriber.core.services.connectivity import (
    ConnectivityMonitor,
    classify_latency,
    tcp_reachability_check,
)
from journal_transcriber.core.services.events import Event, EventBus
from journal_transcriber.domain.network_models import NetworkQuality
from journal_transcriber.infra.network.probe_client import measure_round_trip


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _record(bus: EventBus, event: Event) -> List[Dict[str, Any]]:
    seen: List[Dict[str, Any]] = []
    bus.subscribe(event, seen.append)
    return seen


# -----------------------------------------------------------------------------
# CLASSIFICATION
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("latency_ms, expected", [
    (100, NetworkQuality.EXCELLENT),
    (300, NetworkQuality.GOOD),
    (800, NetworkQuality.FAIR),
    (1200, NetworkQuality.POOR),
    (149.9, NetworkQuality.EXCELLENT),
    (150, NetworkQuality.GOOD),
    (400, NetworkQuality.FAIR),
    (1000, NetworkQuality.POOR),
])
def test_classify_latency_tiers(latency_ms, expected):
    """TC-01: Round-trip latency maps onto the quality tiers."""
    assert classify_latency(latency_ms) is expected


@pytest.mark.parametrize("probe_result, expected", [
    ((True, 100.0), NetworkQuality.EXCELLENT),
    ((True, 300.0), NetworkQuality.GOOD),
    ((True, 800.0), NetworkQuality.FAIR),
    ((True, 1200.0), NetworkQuality.POOR),
    ((False, 50.0), NetworkQuality.POOR),
])
def test_probe_results_drive_quality(probe_result, expected):
    """TC-02: A connected probe classifies its result; failures are poor."""
    monitor = ConnectivityMonitor(probe=FakeProbe(probe_result))
    monitor.update_reachability(True)
    assert monitor.quality is expected


def test_probe_exception_yields_poor():
    def exploding_probe(url, timeout):
        raise RuntimeError("boom")

    monitor = ConnectivityMonitor(probe=exploding_probe)
    monitor.update_reachability(True)

    assert monitor.quality is NetworkQuality.POOR
    assert monitor.is_testing_quality is False


# -----------------------------------------------------------------------------
# REACHABILITY TRANSITIONS
# -----------------------------------------------------------------------------

def test_connect_emits_status_then_forced_probe():
    """TC-03: false -> true resets quality and forces a probe."""
    bus = EventBus()
    status = _record(bus, Event.NETWORK_STATUS_CHANGED)
    quality = _record(bus, Event.NETWORK_QUALITY_CHANGED)
    probe = FakeProbe((True, 300.0))

    monitor = ConnectivityMonitor(bus, probe=probe)
    monitor.update_reachability(True, "Wi-Fi")

    assert status == [{"is_connected": True, "description": "Wi-Fi"}]
    assert quality == [{"quality": NetworkQuality.GOOD}]
    assert probe.calls == 1
    assert monitor.can_transcribe is True
    assert monitor.last_quality_test_at is not None


def test_disconnect_sets_poor_without_probing():
    """TC-04: true -> false is pessimistic and does not probe."""
    bus = EventBus()
    probe = FakeProbe((True, 100.0))
    monitor = ConnectivityMonitor(bus, probe=probe)
    monitor.update_reachability(True)
    quality = _record(bus, Event.NETWORK_QUALITY_CHANGED)

    monitor.update_reachability(False)

    assert monitor.is_connected is False
    assert monitor.quality is NetworkQuality.POOR
    assert monitor.can_transcribe is False
    assert probe.calls == 1
    assert quality == [{"quality": NetworkQuality.POOR}]


def test_not_connected_probe_skips_request():
    probe = FakeProbe()
    monitor = ConnectivityMonitor(probe=probe)

    assert monitor.test_quality(force=True) is NetworkQuality.POOR
    assert probe.calls == 0


def test_same_state_update_respects_throttle():
    """TC-05: An interface change re-probes only when the throttle allows it."""
    clock = FakeClock()
    probe = FakeProbe((True, 100.0))
    monitor = ConnectivityMonitor(probe=probe, clock=clock, quality_test_interval=300)
    monitor.update_reachability(True)

    clock.now += 60
    monitor.update_reachability(True)
    assert probe.calls == 1

    clock.now += 300
    monitor.update_reachability(True)
    assert probe.calls == 2


# -----------------------------------------------------------------------------
# THROTTLING
# -----------------------------------------------------------------------------

def test_throttle_skips_recent_good_probe():
    clock = FakeClock()
    probe = FakeProbe((True, 100.0))
    monitor = ConnectivityMonitor(probe=probe, clock=clock)
    monitor.update_reachability(True)

    clock.now += 10
    assert monitor.test_quality() is NetworkQuality.EXCELLENT
    assert probe.calls == 1


def test_force_bypasses_throttle():
    clock = FakeClock()
    probe = FakeProbe((True, 100.0), (True, 800.0))
    monitor = ConnectivityMonitor(probe=probe, clock=clock)
    monitor.update_reachability(True)

    clock.now += 10
    assert monitor.test_quality(force=True) is NetworkQuality.FAIR
    assert probe.calls == 2


def test_poor_quality_is_never_throttled():
    clock = FakeClock()
    probe = FakeProbe((False, 0.0), (True, 100.0))
    monitor = ConnectivityMonitor(probe=probe, clock=clock)
    monitor.update_reachability(True)
    assert monitor.quality is NetworkQuality.POOR

    clock.now += 1
    assert monitor.test_quality() is NetworkQuality.EXCELLENT
    assert probe.calls == 2


def test_concurrent_probe_returns_last_known_value():
    """TC-06: A probe already in flight short-circuits other callers."""
    monitor = ConnectivityMonitor()
    inner: List[NetworkQuality] = []

    def reentrant_probe(url, timeout):
        inner.append(monitor.test_quality(force=True))
        return True, 100.0

    monitor._probe = reentrant_probe
    monitor.update_reachability(True)

    assert inner == [NetworkQuality.UNKNOWN]
    assert monitor.quality is NetworkQuality.EXCELLENT


def test_check_network_for_transcription_messages():
    monitor = ConnectivityMonitor(probe=FakeProbe((True, 1500.0)))
    assert monitor.check_network_for_transcription() == (False, "No internet connection.")

    monitor.update_reachability(True)
    ok, message = monitor.check_network_for_transcription()
    assert ok is False
    assert "too poor" in message


# -----------------------------------------------------------------------------
# WATCHER & PROBE CLIENT
# -----------------------------------------------------------------------------

def test_poll_once_feeds_reachability():
    monitor = ConnectivityMonitor(probe=FakeProbe(), reachability_check=lambda: True)
    assert monitor.poll_once() is True
    assert monitor.is_connected is True
    assert monitor.quality is NetworkQuality.EXCELLENT


def test_poll_once_treats_check_errors_as_offline():
    def failing_check():
        raise OSError("no route")

    monitor = ConnectivityMonitor(reachability_check=failing_check)
    assert monitor.poll_once() is False
    assert monitor.is_connected is False


def test_tcp_reachability_check_handles_refusal():
    with patch("socket.create_connection", side_effect=OSError("refused")):
        assert tcp_reachability_check("10.255.255.1", 53, timeout=0.1) is False


def test_measure_round_trip_uses_requests():
    response = MagicMock()
    response.status_code = 204
    clock = iter([10.0, 10.25])

    with patch("requests.get", return_value=response) as mock_get:
        ok, elapsed = measure_round_trip("https://probe.test/", timeout=5, clock=lambda: next(clock))

    assert ok is True
    assert elapsed == pytest.approx(250.0)
    assert mock_get.call_args.kwargs["timeout"] == 5


def test_measure_round_trip_maps_errors_to_failure():
    with patch("requests.get", side_effect=requests.exceptions.ConnectTimeout("slow")):
        ok, _ = measure_round_trip("https://probe.test/", timeout=5)
    assert ok is False


def test_measure_round_trip_non_2xx_is_failure():
    response = MagicMock()
    response.status_code = 503
    with patch("requests.get", return_value=response):
        ok, _ = measure_round_trip("https://probe.test/")
    assert ok is False
