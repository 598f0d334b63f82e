from __future__ import annotations

"""
CLI Argument Definition and Mapping.

Defines the subcommand schema of the `journal-transcriber` command and the
translation of `config --set KEY=VALUE` pairs into settings overrides.
"""

import argparse
from typing import Any, Dict, List, Optional

from journal_transcriber.domain.config import get_default_settings

# -----------------------------------------------------------------------------
# ARGUMENT DEFINITION
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """
    Construct the argument parser for the journal-transcriber CLI.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    p = argparse.ArgumentParser(
        prog="journal-transcriber",
        description="Offline-tolerant transcription queue for voice journal recordings.",
    )

    # --- Global diagnostics and format ---
    p.add_argument(
        "--debug",
        action="store_true",
        help="Elevate logging verbosity to DEBUG.",
    )
    p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print machine-readable JSON instead of text.",
    )
    p.add_argument(
        "--config-file",
        dest="config_file",
        default=None,
        help="Use this config.json instead of the one in the data directory.",
    )

    sub = p.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    # --- Recording management ---
    add = sub.add_parser("add", help="Register an audio file and queue it for transcription.")
    add.add_argument("audio_file", help="Path to the finished audio recording.")
    add.add_argument("--type", dest="recording_type", default="Journal Entry", help="Recording category.")
    add.add_argument("--question", default=None, help="Journal prompt the recording answers.")
    add.add_argument(
        "--no-enqueue",
        dest="no_enqueue",
        action="store_true",
        help="Store the recording without queueing it.",
    )

    enq = sub.add_parser("enqueue", help="Queue an existing recording id.")
    enq.add_argument("recording_id", help="Identifier printed by 'add' or 'list'.")

    sub.add_parser("list", help="List recordings and their transcription state.")

    # --- Queue operations ---
    proc = sub.add_parser("process", help="Run one processing pass over the queue.")
    proc.add_argument(
        "--wait",
        type=float,
        default=600.0,
        help="Seconds to wait for the batch to finish (default: 600).",
    )

    sub.add_parser("status", help="Show queue size, pending ids and connectivity.")
    sub.add_parser("probe", help="Run a forced network quality probe.")

    # --- Configuration ---
    cfg = sub.add_parser("config", help="Show or update persisted settings.")
    cfg.add_argument(
        "--set",
        dest="assignments",
        metavar="KEY=VALUE",
        action="append",
        default=None,
        help="Setting to update; may be repeated.",
    )

    return p

# -----------------------------------------------------------------------------
# ARGUMENT MAPPING
# -----------------------------------------------------------------------------

def assignments_to_overrides(assignments: Optional[List[str]]) -> Dict[str, Any]:
    """
    Translate `KEY=VALUE` strings into a settings dictionary.

    Values stay strings; type coercion is left to the settings validator.

    Args:
        assignments: Raw `--set` values.

    Returns:
        Dict[str, Any]: Overrides keyed by setting name.

    Raises:
        ValueError: On a malformed pair or an unknown key.
    """
    known = get_default_settings()
    overrides: Dict[str, Any] = {}

    for raw in assignments or []:
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{raw}'.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = value.strip()

    return overrides
