from __future__ import annotations

"""
Recording Store Service.

Defines the collaborator interface the transcription queue depends on and a
JSON-file implementation of it. Metadata lives in
``recordings_metadata.json``; audio files live in ``recordings/`` next to it.
Every mutation rewrites the metadata file atomically.
"""

import logging
import os
import shutil
import threading
from typing import Dict, List, Optional, Protocol

from journal_transcriber.domain.recording_models import Recording
from journal_transcriber.infra.fs import atomic_write_json, read_json

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# COLLABORATOR INTERFACE
# -----------------------------------------------------------------------------

class RecordingStore(Protocol):
    """What the transcription queue needs from a recording store."""

    def resolve(self, job_id: str) -> Optional[str]:
        """Absolute path of the job's audio file, or None if it is gone."""
        ...

    def set_transcript(self, job_id: str, final_text: str, original_text: Optional[str] = None) -> None:
        ...

    def mark_transcription_status(self, job_id: str, succeeded: bool) -> None:
        ...


# -----------------------------------------------------------------------------
# JSON IMPLEMENTATION
# -----------------------------------------------------------------------------

class JsonRecordingStore:
    """
    File-backed recording store.

    Args:
        base_dir: Directory holding the metadata file and the recordings dir.
    """

    METADATA_FILENAME = "recordings_metadata.json"
    LEGACY_TRANSCRIPTIONS_FILENAME = "transcriptions_metadata.json"
    RECORDINGS_DIRNAME = "recordings"

    def __init__(self, base_dir: str) -> None:
        self.base_dir = os.path.abspath(base_dir)
        self.metadata_path = os.path.join(self.base_dir, self.METADATA_FILENAME)
        self.recordings_dir = os.path.join(self.base_dir, self.RECORDINGS_DIRNAME)
        self._lock = threading.RLock()
        self._recordings: Dict[str, Recording] = {}

        os.makedirs(self.recordings_dir, exist_ok=True)
        self._load()
        self._migrate_legacy_transcriptions()

    # --- Queries ---

    def get_recording(self, recording_id: str) -> Optional[Recording]:
        with self._lock:
            return self._recordings.get(str(recording_id))

    def list_recordings(self) -> List[Recording]:
        """All recordings, oldest first."""
        with self._lock:
            return sorted(self._recordings.values(), key=lambda r: r.date)

    def audio_path(self, recording: Recording) -> str:
        return os.path.join(self.recordings_dir, recording.filename)

    def resolve(self, job_id: str) -> Optional[str]:
        recording = self.get_recording(job_id)
        if recording is None:
            logger.warning(f"RecordingStore: Unknown recording id {job_id}.")
            return None

        path = self.audio_path(recording)
        if not os.path.isfile(path):
            logger.warning(f"RecordingStore: Audio file missing for {job_id}: {path}")
            return None
        return path

    # --- Mutations ---

    def add_recording(
            self,
            source_path: str,
            recording_type: str = "Journal Entry",
            question: Optional[str] = None,
            copy_file: bool = True,
    ) -> Recording:
        """
        Register an audio file as a new recording.

        Copied audio is stored as ``<recording id><ext>``. Every call creates
        a new recording, even for a source name seen before.

        Args:
            source_path: Finished audio file produced by the recorder.
            recording_type: Free-form category.
            question: Journal prompt the recording answers.
            copy_file: Copy the audio in; False when it already lives in the
                recordings directory under its final name.

        Returns:
            Recording: The new record.

        Raises:
            FileNotFoundError: If `source_path` does not exist.
        """
        if not os.path.isfile(source_path):
            raise FileNotFoundError(source_path)

        recording = Recording(
            filename=os.path.basename(source_path),
            recording_type=recording_type,
            question=question,
        )
        if copy_file:
            ext = os.path.splitext(source_path)[1].lower()
            recording.filename = f"{recording.id}{ext}"
            shutil.copy2(source_path, self.audio_path(recording))

        with self._lock:
            self._recordings[recording.id] = recording
            self._save()

        logger.info(f"RecordingStore: Saved recording {recording.id} (transcription pending).")
        return recording

    def set_transcript(self, job_id: str, final_text: str, original_text: Optional[str] = None) -> None:
        with self._lock:
            recording = self._recordings.get(str(job_id))
            if recording is None:
                logger.error(f"RecordingStore: Recording {job_id} not found for transcript update.")
                return
            recording.transcription = final_text
            recording.original_transcription = original_text
            recording.is_transcribed = bool(final_text)
            self._save()

        logger.info(
            f"RecordingStore: Transcript stored for {job_id} "
            f"(final={len(final_text or '')} chars, original={original_text is not None})."
        )

    def mark_transcription_status(self, job_id: str, succeeded: bool) -> None:
        with self._lock:
            recording = self._recordings.get(str(job_id))
            if recording is None:
                logger.error(f"RecordingStore: Recording {job_id} not found for status update.")
                return
            # A stored transcript is the source of truth for "transcribed"
            recording.is_transcribed = bool(succeeded and recording.transcription)
            self._save()

    def delete_recording(self, recording_id: str) -> bool:
        """Remove the metadata entry and its audio file."""
        with self._lock:
            recording = self._recordings.pop(str(recording_id), None)
            if recording is None:
                return False
            self._save()

        path = self.audio_path(recording)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"RecordingStore: Could not delete audio file {path}: {e}")
        return True

    # --- Persistence ---

    def _load(self) -> None:
        data = read_json(self.metadata_path, default=[])
        if not isinstance(data, list):
            logger.error("RecordingStore: Metadata file is not a list. Starting empty.")
            data = []

        for item in data:
            try:
                recording = Recording.from_dict(item)
            except (TypeError, AttributeError) as e:
                logger.warning(f"RecordingStore: Skipping malformed entry {item!r}: {e}")
                continue
            self._recordings[recording.id] = recording

        transcribed = sum(1 for r in self._recordings.values() if r.is_transcribed)
        logger.debug(
            f"RecordingStore: Loaded {len(self._recordings)} recordings "
            f"({transcribed} transcribed)."
        )

    def _save(self) -> None:
        atomic_write_json(self.metadata_path, [r.to_dict() for r in self._recordings.values()])

    def _migrate_legacy_transcriptions(self) -> None:
        """Fill empty transcripts from the pre-merge transcription file."""
        legacy_path = os.path.join(self.base_dir, self.LEGACY_TRANSCRIPTIONS_FILENAME)
        legacy = read_json(legacy_path, default=None)
        if not isinstance(legacy, list):
            return

        migrated = 0
        with self._lock:
            for entry in legacy:
                if not isinstance(entry, dict):
                    continue
                recording = self._recordings.get(str(entry.get("recordingId", "")))
                text = entry.get("text")
                if recording is None or not isinstance(text, str):
                    continue
                if recording.transcription:
                    continue
                recording.transcription = text
                recording.is_transcribed = bool(text)
                migrated += 1

            if migrated:
                self._save()

        logger.info(f"RecordingStore: Migrated {migrated} legacy transcriptions from {legacy_path}.")
