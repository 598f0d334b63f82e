from __future__ import annotations

"""
Unit tests for Domain Models.

Verifies the error taxonomy mapping used by the queue's retry policy, the
quality tiers, the recording serialization and the batch report helpers.
"""

import pytest

from journal_transcriber.domain.network_models import NetworkQuality
from journal_transcriber.domain.recording_models import Recording
from journal_transcriber.domain.transcription_models import (
    BatchReport,
    ErrorCategory,
    ErrorKind,
    JobOutcome,
    TranscriptionError,
)


# -----------------------------------------------------------------------------
# ERROR TAXONOMY
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("error, category, recoverable", [
    (TranscriptionError.transport("timed out"), ErrorCategory.TRANSPORT, True),
    (TranscriptionError.server_error(503), ErrorCategory.SERVER_SIDE, True),
    (TranscriptionError.parsing_failed("bad"), ErrorCategory.SERVER_SIDE, True),
    (TranscriptionError.no_data(), ErrorCategory.SERVER_SIDE, True),
    (TranscriptionError.invalid_response(), ErrorCategory.SERVER_SIDE, True),
    (TranscriptionError.api_error("nope", 401, credential_failure=True), ErrorCategory.CLIENT, False),
    (TranscriptionError.api_error("bad request", 400), ErrorCategory.CLIENT, False),
    (TranscriptionError.file_error("too large"), ErrorCategory.CLIENT, False),
    (TranscriptionError.invalid_endpoint("ftp://x"), ErrorCategory.CLIENT, False),
])
def test_error_kinds_map_to_retry_categories(error, category, recoverable):
    """TC-01: Each protocol failure kind lands in the expected retry category."""
    assert error.category is category
    assert error.recoverable is recoverable


def test_every_error_kind_has_a_category():
    for kind in ErrorKind:
        assert isinstance(TranscriptionError(kind).category, ErrorCategory)


def test_not_found_is_not_recoverable():
    assert ErrorCategory.NOT_FOUND.recoverable is False


def test_storage_failures_are_recoverable():
    assert ErrorCategory.STORAGE.recoverable is True


def test_error_carries_status_and_message():
    err = TranscriptionError.server_error(502)
    assert err.status_code == 502
    assert err.message == "Server error: 502"
    assert str(err) == "Server error: 502"
    assert TranscriptionError.transport("reset").message == "Network error: reset"


# -----------------------------------------------------------------------------
# NETWORK QUALITY
# -----------------------------------------------------------------------------

def test_quality_usability_threshold():
    """TC-02: Only fair or better links allow uploads."""
    assert not NetworkQuality.UNKNOWN.usable_for_transcription
    assert not NetworkQuality.POOR.usable_for_transcription
    assert NetworkQuality.FAIR.usable_for_transcription
    assert NetworkQuality.GOOD.usable_for_transcription
    assert NetworkQuality.EXCELLENT.usable_for_transcription
    assert str(NetworkQuality.GOOD) == "Good"


# -----------------------------------------------------------------------------
# RECORDINGS & REPORTS
# -----------------------------------------------------------------------------

def test_recording_roundtrip_ignores_unknown_keys():
    rec = Recording(filename="a.m4a", question="How was today?")
    data = rec.to_dict()
    data["futureField"] = 1

    restored = Recording.from_dict(data)
    assert restored == rec
    assert restored.is_transcribed is False


def test_recordings_get_unique_ids():
    assert Recording(filename="a.m4a").id != Recording(filename="a.m4a").id


def test_batch_report_partitions_failures():
    report = BatchReport(
        attempted=3, succeeded=1, failed=2, remaining=1,
        outcomes=[
            JobOutcome("a", success=True),
            JobOutcome("b", success=False, recoverable=True, category=ErrorCategory.TRANSPORT),
            JobOutcome("c", success=False, recoverable=False, category=ErrorCategory.NOT_FOUND),
        ],
    )
    assert report.still_pending == ["b"]
    assert report.dropped == ["c"]
