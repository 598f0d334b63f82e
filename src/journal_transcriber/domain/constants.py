from __future__ import annotations

"""
Domain Constants.

Centralizes remote endpoints, model identifiers, protocol limits, timeouts
and the default refinement prompts used by the transcription pipeline.
"""

from typing import Dict, Final

CURRENT_CONFIG_VERSION: Final = "1.1.0"
USER_AGENT: Final = "JournalTranscriber-Client/1.1.0"

# -----------------------------------------------------------------------------
# REMOTE SERVICES
# -----------------------------------------------------------------------------
TRANSCRIPTION_ENDPOINT: Final = "https://api.openai.com/v1/audio/transcriptions"
REFINEMENT_ENDPOINT: Final = "https://api.openai.com/v1/chat/completions"
TRANSCRIPTION_MODEL: Final = "whisper-1"
REFINEMENT_MODEL: Final = "gpt-4o-mini"

# Small, fast and reliable page; only status code and latency matter
QUALITY_PROBE_URL: Final = "https://www.apple.com/library/test/success.html"

# Low-level reachability target (public DNS resolver, TCP)
REACHABILITY_HOST: Final = "1.1.1.1"
REACHABILITY_PORT: Final = 53

# -----------------------------------------------------------------------------
# PROTOCOL LIMITS & TIMEOUTS (seconds)
# -----------------------------------------------------------------------------
MAX_AUDIO_FILE_BYTES: Final = 25 * 1024 * 1024
DEFAULT_AUDIO_MIME_TYPE: Final = "audio/m4a"

PROBE_TIMEOUT: Final = 5
TRANSCRIPTION_TIMEOUT: Final = 300
REFINEMENT_TIMEOUT: Final = 180
REACHABILITY_TIMEOUT: Final = 3

# -----------------------------------------------------------------------------
# SCHEDULING
# -----------------------------------------------------------------------------
QUALITY_TEST_INTERVAL: Final = 5 * 60
QUEUE_RETRY_DELAY: Final = 30.0
QUEUE_STARTUP_DELAY: Final = 5.0
REACHABILITY_POLL_INTERVAL: Final = 10.0

# -----------------------------------------------------------------------------
# QUALITY TIERS (round-trip latency upper bounds, milliseconds)
# -----------------------------------------------------------------------------
LATENCY_EXCELLENT_MS: Final = 150
LATENCY_GOOD_MS: Final = 400
LATENCY_FAIR_MS: Final = 1000

# -----------------------------------------------------------------------------
# PROMPTS
# -----------------------------------------------------------------------------
DEFAULT_REFINEMENT_PROMPT: Final = (
    "You are a helpful assistant processing a voice recording. Organize the "
    "transcribed content into clear, well-formatted text. Fix any obvious "
    "transcription errors, improve readability, and maintain the original "
    "meaning. Do not add any new information that wasn't in the original content."
)

JOURNAL_REFINEMENT_PROMPT: Final = (
    "The following is a voice journal entry. Please format it for readability, "
    "correcting any obvious transcription errors, but preserve the original "
    "meaning and tone. Do not add any information not present in the original "
    "entry. Focus on clarity and natural language."
)

# Extensions the speech-to-text endpoint accepts, mapped to MIME types
AUDIO_MIME_TYPES: Dict[str, str] = {
    ".m4a": "audio/m4a",
    ".mp3": "audio/mpeg",
    ".mpga": "audio/mpeg",
    ".mpeg": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
    ".caf": "audio/x-caf",
}
