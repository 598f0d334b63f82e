from __future__ import annotations

"""
Transcription Job Queue Service.

Owns the durable list of recording ids awaiting transcription and drives
their processing. Guarantees:

- at most one batch in flight (processing flag + single-worker executor);
- each batch works on a snapshot of ids taken when it starts, in insertion
  order; ids enqueued meanwhile start with the next batch;
- the snapshot file is rewritten atomically after every mutation;
- recoverable failures stay queued, non-recoverable ones are dropped once;
- at most one deferred re-attempt is pending at any time.

The queue never raises to its callers. Everything observable goes through
the event bus and the read-only accessors.
"""

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional, Tuple

from journal_transcriber.core.services.connectivity import ConnectivityMonitor
from journal_transcriber.core.services.events import Event, EventBus
from journal_transcriber.core.services.recording_store import RecordingStore
from journal_transcriber.domain import constants as const
from journal_transcriber.domain.transcription_models import (
    BatchReport,
    ErrorCategory,
    JobOutcome,
    TranscriptionError,
)
from journal_transcriber.infra.fs import atomic_write_json, read_json
from journal_transcriber.infra.network.transcription_client import TranscriptionClient

logger = logging.getLogger(__name__)

QUEUE_FILE_NAME = "pending_transcriptions.json"

PAUSE_REASON_OFFLINE = "offline"
PAUSE_REASON_POOR_NETWORK = "poor_network"


class TranscriptionQueue:
    """
    Durable, single-flight transcription job queue.

    Args:
        store: Recording store resolving ids and receiving transcripts.
        client: Protocol client performing the remote calls.
        monitor: Connectivity monitor used as the processing gate.
        events: Event bus shared with the monitor.
        data_dir: Directory holding the queue snapshot file.
        retry_delay: Seconds before the deferred re-attempt after a batch
                     that left jobs behind.
        startup_delay: Seconds before the first pass after `start()`.
        refine_transcripts: Run the refinement stage for every job.
        refinement_prompt: System instruction for the refinement stage.
    """

    def __init__(
            self,
            store: RecordingStore,
            client: TranscriptionClient,
            monitor: ConnectivityMonitor,
            events: Optional[EventBus] = None,
            *,
            data_dir: str,
            retry_delay: float = const.QUEUE_RETRY_DELAY,
            startup_delay: float = const.QUEUE_STARTUP_DELAY,
            refine_transcripts: bool = True,
            refinement_prompt: str = const.JOURNAL_REFINEMENT_PROMPT,
    ) -> None:
        self.store = store
        self.client = client
        self.monitor = monitor
        self.events = events or monitor.events
        self.retry_delay = retry_delay
        self.startup_delay = startup_delay
        self.refine_transcripts = refine_transcripts
        self.refinement_prompt = refinement_prompt
        self.queue_file = os.path.join(data_dir, QUEUE_FILE_NAME)

        self._lock = threading.RLock()
        self._pending: List[str] = []
        self._processing = False
        self._closed = False
        self._progress: Tuple[int, int] = (0, 0)
        self._current: Optional[Future] = None
        self._timer: Optional[threading.Timer] = None
        self._last_report: Optional[BatchReport] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="transcription-queue")

        self._load()

    # --- Read-only state ---

    @property
    def pending(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    @property
    def has_scheduled_retry(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def progress(self) -> Tuple[int, int]:
        """(current job index, batch size); (0, 0) when idle."""
        with self._lock:
            return self._progress

    @property
    def last_report(self) -> Optional[BatchReport]:
        with self._lock:
            return self._last_report

    # --- Lifecycle ---

    def start(self) -> None:
        """Listen for network changes and arm the initial delayed pass."""
        with self._lock:
            if self._closed or self._unsubscribers:
                return
            self._unsubscribers = [
                self.events.subscribe(Event.NETWORK_STATUS_CHANGED, self._on_network_changed),
                self.events.subscribe(Event.NETWORK_QUALITY_CHANGED, self._on_network_changed),
            ]
            if self._pending:
                self._schedule_locked(self.startup_delay)

        logger.info(f"Queue: Started with {self.size} pending transcription(s).")

    def shutdown(self, wait: bool = True) -> None:
        """Cancel the deferred pass, unsubscribe and drain the executor."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_timer_locked()
            unsubscribers, self._unsubscribers = self._unsubscribers, []

        for unsubscribe in unsubscribers:
            unsubscribe()
        self._executor.shutdown(wait=wait)
        logger.debug("Queue: Shut down.")

    # --- Public operations ---

    def enqueue(self, job_id: str) -> bool:
        """
        Add a recording id and try to process right away.

        Args:
            job_id: Recording identifier.

        Returns:
            bool: False if the id was already queued.
        """
        job_id = str(job_id)
        with self._lock:
            if job_id in self._pending:
                logger.debug(f"Queue: {job_id} already queued.")
                return False
            self._pending.append(job_id)
            self._persist_locked()
            size = len(self._pending)

        logger.info(f"Queue: Enqueued {job_id}. Queue size: {size}")
        self.events.emit(Event.QUEUE_UPDATED, queue_size=size)
        self.process_if_possible()
        return True

    def process_if_possible(self) -> Optional[Future]:
        """
        Start a batch when the network is usable and nothing is running.

        Returns:
            Optional[Future]: Future resolving to the BatchReport, or None if
            a precondition was not met.
        """
        blocker: Optional[str] = None
        future: Optional[Future] = None

        with self._lock:
            if self._closed or self._processing or not self._pending:
                logger.debug(
                    f"Queue: Pass skipped (processing={self._processing}, size={len(self._pending)})."
                )
                return None

            if not self.monitor.is_connected:
                blocker = PAUSE_REASON_OFFLINE
            elif not self.monitor.can_transcribe:
                blocker = PAUSE_REASON_POOR_NETWORK
            else:
                self._cancel_timer_locked()
                self._processing = True
                snapshot = list(self._pending)
                self._progress = (0, len(snapshot))
                future = self._executor.submit(self._run_batch, snapshot)
                self._current = future
            size = len(self._pending)

        if blocker is not None:
            logger.info(f"Queue: Paused ({blocker}). {size} transcription(s) waiting.")
            self.events.emit(Event.QUEUE_PAUSED, reason=blocker, queue_size=size)
            return None
        return future

    def attempt_process_pending_transcriptions(self) -> Optional[Future]:
        """Manual trigger; same behavior as `process_if_possible`."""
        return self.process_if_possible()

    def wait_for_batch(self, timeout: Optional[float] = None) -> Optional[BatchReport]:
        """
        Block until the current (or last) batch finishes.

        Returns:
            Optional[BatchReport]: The report, or None when no batch ran or
            the timeout elapsed.
        """
        with self._lock:
            future = self._current
        if future is None:
            return None
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            return None

    # --- Batch execution (worker thread) ---

    def _run_batch(self, snapshot: List[str]) -> BatchReport:
        total = len(snapshot)
        outcomes: List[JobOutcome] = []
        logger.info(f"Queue: Processing {total} pending transcription(s).")
        self.events.emit(Event.QUEUE_STARTED, total=total)

        try:
            for index, job_id in enumerate(snapshot, start=1):
                with self._lock:
                    self._progress = (index, total)
                outcome = self._process_job(job_id, index, total)
                outcomes.append(outcome)
                self.events.emit(Event.TRANSCRIPTION_COMPLETED, job_id=job_id, outcome=outcome)
        finally:
            report = self._finish_batch(total, outcomes)

        self.events.emit(Event.QUEUE_COMPLETED, report=report)
        return report

    def _process_job(self, job_id: str, index: int, total: int) -> JobOutcome:
        logger.info(f"Queue: Processing {index}/{total}: {job_id}")
        self.events.emit(Event.TRANSCRIPTION_STARTED, job_id=job_id, index=index, total=total)

        try:
            file_path = self.store.resolve(job_id)
            if file_path is None:
                logger.error(f"Queue: Recording {job_id} not found. Removing from queue.")
                self._drop(job_id)
                return JobOutcome(
                    job_id, success=False, recoverable=False,
                    error="Recording not found.", category=ErrorCategory.NOT_FOUND,
                )

            result = self.client.transcribe(
                file_path,
                requires_refinement=self.refine_transcripts,
                refinement_prompt=self.refinement_prompt,
                status_callback=self._progress_callback(job_id),
            )
            try:
                self.store.set_transcript(job_id, result.final, result.original)
                self.store.mark_transcription_status(job_id, True)
            except OSError as e:
                logger.warning(f"Queue: Could not store transcript for {job_id}; keeping in queue. {e}")
                return JobOutcome(
                    job_id, success=False, recoverable=True,
                    error=f"Failed to store transcript: {e}", category=ErrorCategory.STORAGE,
                )
            self._remove(job_id)
            logger.info(f"Queue: Transcribed {job_id}.")
            return JobOutcome(job_id, success=True)

        except TranscriptionError as e:
            if e.recoverable:
                logger.warning(f"Queue: Recoverable error for {job_id}; keeping in queue. {e.message}")
            else:
                logger.error(f"Queue: Non-recoverable error for {job_id}; removing from queue. {e.message}")
                self._drop(job_id)
            return JobOutcome(
                job_id, success=False, recoverable=e.recoverable,
                error=e.message, category=e.category,
            )

        except Exception as e:
            logger.exception(f"Queue: Unexpected error for {job_id}; removing from queue.")
            self._drop(job_id)
            return JobOutcome(job_id, success=False, recoverable=False, error=str(e))

    def _finish_batch(self, total: int, outcomes: List[JobOutcome]) -> BatchReport:
        succeeded = sum(1 for o in outcomes if o.success)
        with self._lock:
            self._processing = False
            self._progress = (0, 0)
            remaining = len(self._pending)
            retry = bool(remaining) and not self._closed and self.monitor.can_transcribe
            if retry:
                self._schedule_locked(self.retry_delay)
            report = BatchReport(
                attempted=total,
                succeeded=succeeded,
                failed=len(outcomes) - succeeded,
                remaining=remaining,
                retry_scheduled=retry,
                outcomes=outcomes,
            )
            self._last_report = report

        logger.info(
            f"Queue: Batch complete. {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.remaining} still pending."
        )
        return report

    def _progress_callback(self, job_id: str) -> Callable[[str], None]:
        def _report(message: str) -> None:
            self.events.emit(Event.TRANSCRIPTION_PROGRESS, job_id=job_id, message=message)

        return _report

    # --- Queue mutations ---

    def _remove(self, job_id: str) -> None:
        with self._lock:
            if job_id not in self._pending:
                return
            self._pending.remove(job_id)
            self._persist_locked()
            size = len(self._pending)
        self.events.emit(Event.QUEUE_UPDATED, queue_size=size)

    def _drop(self, job_id: str) -> None:
        """Remove a job for good and leave the recording marked untranscribed."""
        self._remove(job_id)
        try:
            self.store.mark_transcription_status(job_id, False)
        except Exception:
            logger.exception(f"Queue: Could not update status of {job_id}.")

    # --- Deferred passes ---

    def _schedule_locked(self, delay: float) -> None:
        if self._timer is not None:
            return
        timer = threading.Timer(delay, self._on_timer)
        timer.args = (timer,)
        timer.daemon = True
        timer.name = "transcription-queue-retry"
        self._timer = timer
        timer.start()
        logger.debug(f"Queue: Next pass scheduled in {delay:.0f}s.")

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, timer: threading.Timer) -> None:
        with self._lock:
            if self._timer is not timer:
                # Superseded by a newer timer, which owns the next pass
                return
            self._timer = None
        self.process_if_possible()

    def _on_network_changed(self, payload: Dict[str, Any]) -> None:
        if self.monitor.can_transcribe:
            logger.debug(f"Queue: Network usable again ({payload}). Reconsidering.")
            self.process_if_possible()

    # --- Persistence ---

    def _load(self) -> None:
        data = read_json(self.queue_file, default=[])
        if not isinstance(data, list):
            logger.error(f"Queue: Snapshot {self.queue_file} is not a list. Starting empty.")
            data = []

        ids: List[str] = []
        for item in data:
            job_id = str(item)
            if job_id not in ids:
                ids.append(job_id)

        with self._lock:
            self._pending = ids
            if len(ids) != len(data):
                logger.warning(f"Queue: Collapsed {len(data) - len(ids)} duplicate id(s) in snapshot.")
                self._persist_locked()

        logger.debug(f"Queue: Loaded {len(ids)} pending transcription(s).")

    def _persist_locked(self) -> None:
        try:
            atomic_write_json(self.queue_file, list(self._pending))
        except OSError as e:
            logger.error(f"Queue: Failed to persist snapshot {self.queue_file}: {e}")
