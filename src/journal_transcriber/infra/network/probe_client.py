from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Tuple

import requests

from journal_transcriber.domain.constants import PROBE_TIMEOUT
from journal_transcriber.infra.network.common import build_headers

logger = logging.getLogger(__name__)


def measure_round_trip(
        url: str,
        timeout: float = PROBE_TIMEOUT,
        session: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
) -> Tuple[bool, float]:
    """
    Time one small GET request against a well-known URL.

    Args:
        url: Probe target; only status code and latency matter.
        timeout: Hard timeout in seconds.
        session: Object exposing `get` (a requests.Session); defaults to requests.
        clock: Monotonic time source, in seconds.

    Returns:
        Tuple[bool, float]: (2xx received, elapsed milliseconds). Transport
        failures return (False, elapsed).
    """
    http = session if session is not None else requests
    start = clock()
    try:
        response = http.get(url, headers=build_headers(), timeout=timeout)
        elapsed_ms = (clock() - start) * 1000
    except requests.exceptions.RequestException as e:
        elapsed_ms = (clock() - start) * 1000
        logger.info(f"Network: Quality probe failed after {elapsed_ms:.0f}ms: {e}")
        return False, elapsed_ms

    ok = 200 <= response.status_code < 300
    if not ok:
        logger.info(f"Network: Quality probe returned HTTP {response.status_code}.")
    return ok, elapsed_ms
