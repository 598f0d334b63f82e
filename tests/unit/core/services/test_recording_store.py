from __future__ import annotations

"""
Unit tests for the JSON Recording Store.

Covers registration of audio files, path resolution, transcript updates,
deletion and the one-off migration of the legacy transcription file.
"""

import json
import os

from journal_transcriber.core.services.recording_store import JsonRecordingStore


def _metadata(base_dir: str):
    with open(os.path.join(base_dir, JsonRecordingStore.METADATA_FILENAME), "r", encoding="utf-8") as f:
        return json.load(f)


def test_add_recording_copies_audio_and_persists(tmp_path, audio_file):
    """TC-01: A new recording is copied in and saved as not transcribed."""
    base = str(tmp_path / "store")
    store = JsonRecordingStore(base)

    rec = store.add_recording(audio_file, question="What made you smile?")

    assert os.path.isfile(os.path.join(base, "recordings", f"{rec.id}.m4a"))
    assert rec.is_transcribed is False
    assert rec.question == "What made you smile?"
    assert [r["id"] for r in _metadata(base)] == [rec.id]


def test_same_source_name_creates_separate_recordings(tmp_path):
    """TC-05: Two sources named alike keep their own audio and transcript."""
    store = JsonRecordingStore(str(tmp_path / "store"))
    for day, payload in (("mon", b"monday audio"), ("tue", b"tuesday audio")):
        (tmp_path / day).mkdir()
        (tmp_path / day / "entry.m4a").write_bytes(payload)

    monday = store.add_recording(str(tmp_path / "mon" / "entry.m4a"))
    store.set_transcript(monday.id, "Monday text")
    tuesday = store.add_recording(str(tmp_path / "tue" / "entry.m4a"), recording_type="Reflection")

    assert monday.id != tuesday.id
    assert len(store.list_recordings()) == 2
    with open(store.resolve(monday.id), "rb") as f:
        assert f.read() == b"monday audio"
    with open(store.resolve(tuesday.id), "rb") as f:
        assert f.read() == b"tuesday audio"
    assert store.get_recording(tuesday.id).transcription is None
    assert store.get_recording(monday.id).transcription == "Monday text"


def test_uncopied_recording_keeps_its_name(tmp_path):
    store = JsonRecordingStore(str(tmp_path / "store"))
    in_place = os.path.join(store.recordings_dir, "RecordedAudio_1.m4a")
    with open(in_place, "wb") as f:
        f.write(b"audio")

    rec = store.add_recording(in_place, copy_file=False)

    assert rec.filename == "RecordedAudio_1.m4a"
    assert store.resolve(rec.id) == in_place


def test_resolve_returns_path_only_when_file_exists(tmp_path, audio_file):
    """TC-02: A missing audio file resolves to None."""
    store = JsonRecordingStore(str(tmp_path / "store"))
    rec = store.add_recording(audio_file)

    path = store.resolve(rec.id)
    assert path == os.path.join(store.recordings_dir, f"{rec.id}.m4a")

    os.remove(path)
    assert store.resolve(rec.id) is None
    assert store.resolve("unknown-id") is None


def test_set_transcript_and_status(tmp_path, audio_file):
    """TC-03: A stored non-empty transcript marks the recording transcribed."""
    base = str(tmp_path / "store")
    store = JsonRecordingStore(base)
    rec = store.add_recording(audio_file)

    store.set_transcript(rec.id, "Refined text.", "raw text")
    store.mark_transcription_status(rec.id, True)

    reloaded = JsonRecordingStore(base).get_recording(rec.id)
    assert reloaded.transcription == "Refined text."
    assert reloaded.original_transcription == "raw text"
    assert reloaded.is_transcribed is True


def test_empty_transcript_is_not_transcribed(tmp_path, audio_file):
    store = JsonRecordingStore(str(tmp_path / "store"))
    rec = store.add_recording(audio_file)

    store.set_transcript(rec.id, "")
    store.mark_transcription_status(rec.id, True)

    assert store.get_recording(rec.id).is_transcribed is False


def test_failed_status_keeps_recording_untranscribed(tmp_path, audio_file):
    store = JsonRecordingStore(str(tmp_path / "store"))
    rec = store.add_recording(audio_file)

    store.mark_transcription_status(rec.id, False)
    store.mark_transcription_status("unknown-id", False)

    assert store.get_recording(rec.id).is_transcribed is False
    assert store.get_recording(rec.id).transcription is None


def test_delete_recording_removes_audio(tmp_path, audio_file):
    store = JsonRecordingStore(str(tmp_path / "store"))
    rec = store.add_recording(audio_file)
    path = store.resolve(rec.id)

    assert store.delete_recording(rec.id) is True
    assert not os.path.exists(path)
    assert store.get_recording(rec.id) is None
    assert store.delete_recording(rec.id) is False


def test_legacy_transcriptions_are_migrated_once(tmp_path, audio_file):
    """TC-04: The old separate transcription file fills empty transcripts."""
    base = str(tmp_path / "store")
    store = JsonRecordingStore(base)
    rec = store.add_recording(audio_file)

    with open(os.path.join(base, "transcriptions_metadata.json"), "w", encoding="utf-8") as f:
        json.dump([{"recordingId": rec.id, "text": "From the old file."}, {"recordingId": "gone", "text": "x"}], f)

    migrated = JsonRecordingStore(base).get_recording(rec.id)
    assert migrated.transcription == "From the old file."
    assert migrated.is_transcribed is True


def test_malformed_metadata_entries_are_skipped(tmp_path):
    base = tmp_path / "store"
    base.mkdir()
    (base / JsonRecordingStore.METADATA_FILENAME).write_text(
        json.dumps([{"filename": "ok.m4a", "id": "r1"}, {"unexpected": True}, "junk"]),
        encoding="utf-8",
    )

    store = JsonRecordingStore(str(base))
    assert [r.id for r in store.list_recordings()] == ["r1"]
