from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. An isolated data directory so no test touches the real user profile.
3. Test doubles for the connectivity probe, the HTTP layer and the store.
"""

import os
import sys
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)


# -----------------------------------------------------------------------------
# Test Doubles
# -----------------------------------------------------------------------------
class FakeProbe:
    """Scripted quality probe returning queued (ok, latency_ms) results."""

    def __init__(self, *results: Tuple[bool, float]) -> None:
        self.results: List[Tuple[bool, float]] = list(results) or [(True, 100.0)]
        self.calls = 0

    def __call__(self, url: str, timeout: float) -> Tuple[bool, float]:
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class InMemoryStore:
    """Recording store keeping paths and transcripts in dictionaries."""

    def __init__(self, paths: Optional[Dict[str, str]] = None) -> None:
        self.paths: Dict[str, str] = dict(paths or {})
        self.transcripts: Dict[str, Tuple[str, Optional[str]]] = {}
        self.status: Dict[str, bool] = {}

    def resolve(self, job_id: str) -> Optional[str]:
        return self.paths.get(job_id)

    def set_transcript(self, job_id: str, final_text: str, original_text: Optional[str] = None) -> None:
        self.transcripts[job_id] = (final_text, original_text)

    def mark_transcription_status(self, job_id: str, succeeded: bool) -> None:
        self.status[job_id] = succeeded


def make_response(status_code: int = 200, payload: Any = None, text: str = "") -> MagicMock:
    """Build a requests-like response mock."""
    import json

    response = MagicMock()
    response.status_code = status_code
    if payload is not None:
        body = json.dumps(payload)
        response.json.return_value = payload
    else:
        body = text
        response.json.side_effect = ValueError("No JSON object could be decoded")
    response.text = body
    response.content = body.encode("utf-8")
    return response


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> str:
    """Point the application data directory at a temporary folder."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("JOURNAL_TRANSCRIBER_HOME", str(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return str(home)


@pytest.fixture
def mock_settings_dict() -> Dict[str, Any]:
    """
    Return a valid, complete settings dictionary for testing.

    Mirrors 'journal_transcriber.domain.config.get_default_settings' with a
    fake credential and a short retry delay.
    """
    from journal_transcriber.domain.config import get_default_settings

    settings = get_default_settings()
    settings.update({
        "api_key": "sk-test-key",
        "retry_delay_seconds": 30.0,
        "log_to_file": False,
    })
    return settings


@pytest.fixture
def audio_file(tmp_path) -> str:
    """A small, non-empty .m4a file."""
    path = tmp_path / "entry.m4a"
    path.write_bytes(b"\x00\x00\x00\x18ftypM4A fake audio payload")
    return str(path)


@pytest.fixture
def clean_logging():
    """Tear down the package's logging setup so each CLI run reconfigures it."""
    import logging

    from journal_transcriber.infra.logging import (
        _CONFIGURED_FLAG_ATTR,
        _HANDLER_TAG_ATTR,
        _QUEUE_LISTENER_ATTR,
    )

    yield

    root = logging.getLogger()
    listener = getattr(root, _QUEUE_LISTENER_ATTR, None)
    if listener is not None and getattr(listener, "_thread", None) is not None:
        listener.stop()
    setattr(root, _QUEUE_LISTENER_ATTR, None)
    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG_ATTR, False):
            root.removeHandler(h)
            h.close()
    if hasattr(root, _CONFIGURED_FLAG_ATTR):
        delattr(root, _CONFIGURED_FLAG_ATTR)
