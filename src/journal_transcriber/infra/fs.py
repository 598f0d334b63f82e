from __future__ import annotations

"""
FileSystem Infrastructure Layer.

Provides cross-platform resolution of the application data directory and
all-or-nothing JSON persistence. Every durable artifact of the pipeline
(queue snapshot, recording metadata, configuration) is written through
`atomic_write_json` so that a crash mid-write never leaves a torn file.
"""

import json
import logging
import os
import tempfile
from typing import Any

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# GLOBAL CONSTANTS
# -----------------------------------------------------------------------------

APP_DIR_NAME = "JournalTranscriber"
UNIX_APP_DIR_NAME = ".journal_transcriber"
HOME_ENV_VAR = "JOURNAL_TRANSCRIBER_HOME"

# -----------------------------------------------------------------------------
# PATH RESOLUTION API
# -----------------------------------------------------------------------------

def get_user_data_dir() -> str:
    """
    Resolve the standard OS-specific directory for persistent application data.

    Automatically creates the hierarchy if it does not exist.
    Standards:
    - Override: $JOURNAL_TRANSCRIBER_HOME
    - Windows: %LOCALAPPDATA%/JournalTranscriber
    - Linux/Mac: ~/.journal_transcriber

    Returns:
        str: Absolute path to the application data directory.
    """
    path: str = os.environ.get(HOME_ENV_VAR, "").strip()

    # Windows specific resolution
    if not path and os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            path = os.path.join(base, APP_DIR_NAME)

    # Posix fallback (Linux/Mac)
    if not path:
        home = os.path.expanduser("~")
        path = os.path.join(home, UNIX_APP_DIR_NAME)

    # Idempotent directory creation
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        logger.warning(f"Could not create data directory '{path}': {e}")

    return os.path.abspath(path)


# -----------------------------------------------------------------------------
# DURABLE JSON PERSISTENCE
# -----------------------------------------------------------------------------

def atomic_write_json(path: str, data: Any) -> None:
    """
    Serialize `data` to `path` as an all-or-nothing replacement.

    The payload is written to a temporary sibling file, flushed to disk and
    then swapped into place with `os.replace`, which is atomic on both POSIX
    and Windows when source and target share a volume.

    Args:
        path: Destination file.
        data: JSON-serializable payload.

    Raises:
        OSError: If the directory is not writable or the swap fails.
        TypeError: If the payload is not JSON-serializable.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def read_json(path: str, default: Any = None) -> Any:
    """
    Load a JSON document, returning `default` when it is absent or unreadable.

    Args:
        path: Source file.
        default: Value returned on a missing or corrupted file.

    Returns:
        Any: Decoded payload or the default.
    """
    if not os.path.exists(path):
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable JSON document at '{path}': {e}")
        return default
