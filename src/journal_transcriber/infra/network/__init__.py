from __future__ import annotations

"""
Network Communication Infrastructure.

Facade over the HTTP clients: the latency probe used by the connectivity
monitor and the two-stage transcription protocol client.
"""

from journal_transcriber.infra.network.probe_client import measure_round_trip
from journal_transcriber.infra.network.transcription_client import (
    TranscriptionClient,
    build_multipart_body,
    guess_audio_mime_type,
)

__all__ = [
    "measure_round_trip",
    "TranscriptionClient",
    "build_multipart_body",
    "guess_audio_mime_type",
]
