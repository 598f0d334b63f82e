from __future__ import annotations

"""
Recording Domain Models.

Metadata describing one captured journal recording and the transcript state
attached to it. Serialized as a JSON object inside the recording store.
"""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass
class Recording:
    """
    A recorded journal answer.

    Attributes:
        id: Unique identifier; also used as the transcription job id.
        filename: Audio file name relative to the store's recordings dir.
        recording_type: Free-form category (e.g. "Journal Entry").
        date: ISO-8601 creation timestamp.
        question: Journal prompt the recording answers, if any.
        is_transcribed: Whether a non-empty transcript is stored.
        transcription: Final transcript text.
        original_transcription: Raw speech-to-text output before refinement.
        original_duration: Duration before silence trimming, in seconds.
        processed_duration: Duration after silence trimming, in seconds.
    """
    filename: str
    recording_type: str = "Journal Entry"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    date: str = field(default_factory=_utc_now_iso)
    question: Optional[str] = None
    is_transcribed: bool = False
    transcription: Optional[str] = None
    original_transcription: Optional[str] = None
    original_duration: Optional[float] = None
    processed_duration: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recording":
        """Build a Recording, ignoring unknown keys written by newer versions."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
