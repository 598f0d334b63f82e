from __future__ import annotations

"""
Command Line Interface (CLI) Application Controller.

Orchestrates the CLI lifecycle: logging bootstrap, settings resolution
(persisted config, environment, validation), command dispatch against the
transcription subsystem and result rendering. Progress goes to stderr so
that `--json` output on stdout stays machine-readable.
"""

import argparse
import json
import os
import sys
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from journal_transcriber.core.app import TranscriptionApp
from journal_transcriber.core.services.events import Event
from journal_transcriber.core.validator import validate_settings
from journal_transcriber.domain.config import load_settings, save_settings
from journal_transcriber.domain.transcription_models import BatchReport
from journal_transcriber.infra.logging import (
    LoggingConfig,
    configure_logging,
    get_default_log_path,
    get_logger,
)
from journal_transcriber.interface.cli import args as cli_args

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_INPUT = 2
EXIT_INTERRUPTED = 130

# -----------------------------------------------------------------------------
# ENTRYPOINT ORCHESTRATOR
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Execute the main CLI application workflow.

    Args:
        argv: Optional list of command line arguments. Defaults to sys.argv.

    Returns:
        int: Process exit code (0 ok, 1 failure, 2 bad input, 130 interrupted).
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8")

    # 1. Argument parsing phase
    parser = cli_args.build_parser()
    args = parser.parse_args(argv)

    # 2. Settings resolution (persisted state + environment)
    raw_settings = load_settings(args.config_file)

    # 3. Logging bootstrap
    log_level = "DEBUG" if args.debug else str(raw_settings.get("log_level") or "INFO")
    log_file = get_default_log_path() if raw_settings.get("log_to_file") else None
    configure_logging(LoggingConfig(level=log_level, console=True, log_file=log_file))
    logger.debug(f"CLI command '{args.command}' initiated.")

    # 4. Schema validation and normalization
    settings, warnings = validate_settings(raw_settings, strict=False)
    for w in warnings:
        logger.warning(f"Configuration Constraint: {w}")

    handler = _COMMANDS[args.command]
    try:
        return handler(args, settings)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        print("Interrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.critical(f"Command '{args.command}' failed: {e}", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE

# -----------------------------------------------------------------------------
# COMMAND HANDLERS
# -----------------------------------------------------------------------------

def _cmd_add(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    if not os.path.isfile(args.audio_file):
        msg = f"Audio file does not exist: {args.audio_file}"
        logger.error(msg)
        print(f"ERROR: {msg}", file=sys.stderr)
        return EXIT_BAD_INPUT

    with TranscriptionApp(settings) as app:
        recording = app.store.add_recording(
            args.audio_file,
            recording_type=args.recording_type,
            question=args.question,
        )
        queued = False if args.no_enqueue else app.queue.enqueue(recording.id)
        queue_size = app.queue.size

    _render(args, {"recording": recording.to_dict(), "queued": queued, "queue_size": queue_size}, [
        f"Recording saved: {recording.id} ({recording.filename})",
        f"Queued for transcription. Queue size: {queue_size}" if queued else "Not queued.",
    ])
    return EXIT_OK


def _cmd_enqueue(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with TranscriptionApp(settings) as app:
        if app.store.get_recording(args.recording_id) is None:
            msg = f"Unknown recording id: {args.recording_id}"
            logger.error(msg)
            print(f"ERROR: {msg}", file=sys.stderr)
            return EXIT_BAD_INPUT
        added = app.queue.enqueue(args.recording_id)
        queue_size = app.queue.size

    _render(args, {"job_id": args.recording_id, "added": added, "queue_size": queue_size}, [
        f"{'Queued' if added else 'Already queued'}: {args.recording_id}. Queue size: {queue_size}",
    ])
    return EXIT_OK


def _cmd_process(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with TranscriptionApp(settings) as app:
        if not args.json_output:
            _attach_progress_printer(app)
        app.start(watch_network=False)

        if app.queue.size == 0:
            _render(args, {"queue_size": 0, "report": None}, ["Nothing to transcribe."])
            return EXIT_OK

        # A usable network triggers the batch through the queue's listener
        app.monitor.poll_once()
        app.queue.attempt_process_pending_transcriptions()
        report = app.queue.wait_for_batch(args.wait)

        if report is None:
            _, reason = app.monitor.check_network_for_transcription()
            if app.queue.is_processing:
                reason = f"Batch still running after {args.wait:.0f}s."
            _render(args, {"queue_size": app.queue.size, "report": None, "reason": reason}, [
                f"Queue paused: {reason}",
                f"{app.queue.size} transcription(s) waiting.",
            ])
            return EXIT_FAILURE

    _render(args, {"report": _report_to_dict(report)}, _report_lines(report))
    return EXIT_OK if report.failed == 0 else EXIT_FAILURE


def _cmd_status(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with TranscriptionApp(settings) as app:
        app.monitor.poll_once()
        payload = {
            "queue_size": app.queue.size,
            "pending": app.queue.pending,
            "is_connected": app.monitor.is_connected,
            "quality": app.monitor.quality.label,
            "description": app.monitor.connection_description,
        }

    lines = [
        f"Pending transcriptions: {payload['queue_size']}",
        *[f"  - {job_id}" for job_id in payload["pending"]],
        f"Network: {payload['description']} (quality: {payload['quality']})",
    ]
    _render(args, payload, lines)
    return EXIT_OK


def _cmd_probe(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with TranscriptionApp(settings) as app:
        connected = app.monitor.poll_once()
        quality = app.monitor.quality
        can_proceed = app.monitor.can_transcribe

    payload = {"is_connected": connected, "quality": quality.label, "can_transcribe": can_proceed}
    if not connected:
        _render(args, payload, ["No internet connection."])
        return EXIT_FAILURE

    _render(args, payload, [
        f"Network quality: {quality}",
        "Transcription possible." if can_proceed else "Network quality is too poor for transcription.",
    ])
    return EXIT_OK


def _cmd_list(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    with TranscriptionApp(settings) as app:
        recordings = app.store.list_recordings()
        pending = set(app.queue.pending)

    rows = [dict(r.to_dict(), queued=r.id in pending) for r in recordings]
    lines = [
        f"{r.id}  {r.date}  {r.recording_type:<14}  "
        f"{'transcribed' if r.is_transcribed else ('queued' if r.id in pending else 'not transcribed')}"
        for r in recordings
    ] or ["No recordings."]
    _render(args, {"recordings": rows}, lines)
    return EXIT_OK


def _cmd_config(args: argparse.Namespace, settings: Dict[str, Any]) -> int:
    if args.assignments:
        try:
            overrides = cli_args.assignments_to_overrides(args.assignments)
        except ValueError as e:
            logger.error(str(e))
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_BAD_INPUT

        merged = dict(settings)
        merged.update(overrides)
        settings, warnings = validate_settings(merged, strict=False)
        if warnings:
            for w in warnings:
                print(f"WARNING: {w}", file=sys.stderr)
        save_settings({k: settings[k] for k in overrides}, args.config_file)
        logger.info(f"Settings updated: {', '.join(sorted(overrides))}")

    shown = dict(settings)
    shown["api_key"] = _mask_secret(shown.get("api_key", ""))
    if args.json_output:
        print(json.dumps(shown, ensure_ascii=False, indent=2))
    else:
        for key in sorted(shown):
            print(f"{key} = {shown[key]}")
    return EXIT_OK


_COMMANDS: Dict[str, Callable[[argparse.Namespace, Dict[str, Any]], int]] = {
    "add": _cmd_add,
    "enqueue": _cmd_enqueue,
    "process": _cmd_process,
    "status": _cmd_status,
    "probe": _cmd_probe,
    "list": _cmd_list,
    "config": _cmd_config,
}

# -----------------------------------------------------------------------------
# VIEW RENDERING
# -----------------------------------------------------------------------------

def _render(args: argparse.Namespace, payload: Dict[str, Any], lines: List[str]) -> None:
    if args.json_output:
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        return
    for line in lines:
        print(line)


def _attach_progress_printer(app: TranscriptionApp) -> None:
    def _on_progress(payload: Dict[str, Any]) -> None:
        print(f"[{payload['job_id'][:8]}] {payload['message']}", file=sys.stderr)

    def _on_started(payload: Dict[str, Any]) -> None:
        print(f"Transcribing {payload['index']}/{payload['total']}: {payload['job_id']}", file=sys.stderr)

    app.subscribe(Event.TRANSCRIPTION_PROGRESS, _on_progress)
    app.subscribe(Event.TRANSCRIPTION_STARTED, _on_started)


def _report_to_dict(report: BatchReport) -> Dict[str, Any]:
    data = asdict(report)
    data["outcomes"] = [
        dict(o, category=o["category"].value if o["category"] else None) for o in data["outcomes"]
    ]
    return data


def _report_lines(report: BatchReport) -> List[str]:
    lines = [
        f"Processed {report.attempted} transcription(s): "
        f"{report.succeeded} succeeded, {report.failed} failed.",
    ]
    for outcome in report.outcomes:
        if outcome.success:
            continue
        action = "will retry" if outcome.recoverable else "removed from queue"
        lines.append(f"  - {outcome.job_id}: {outcome.error} ({action})")
    if report.remaining:
        lines.append(f"{report.remaining} transcription(s) still pending.")
    return lines


def _mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:3]}...{value[-4:]}"

# -----------------------------------------------------------------------------
# CLI ENTRYPOINT
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
