from __future__ import annotations

"""
Transcription Domain Data Models.

Defines the result of a two-stage transcription, the structured error
taxonomy raised by the protocol client, and the per-job and per-batch
reports produced by the job queue.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# -----------------------------------------------------------------------------
# RESULT MODELS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class TranscriptionResult:
    """
    Text produced for one recording.

    Attributes:
        original: Raw speech-to-text output when a refinement stage ran,
                  otherwise None.
        final: Refined text, or the raw output when no refinement ran.
    """
    original: Optional[str]
    final: str


# -----------------------------------------------------------------------------
# ERROR TAXONOMY
# -----------------------------------------------------------------------------

class ErrorKind(Enum):
    """Protocol-level failure kinds reported by the transcription client."""
    INVALID_ENDPOINT = "invalid_endpoint"
    INVALID_RESPONSE = "invalid_response"
    API_ERROR = "api_error"
    SERVER_ERROR = "server_error"
    NO_DATA = "no_data"
    PARSING_FAILED = "parsing_failed"
    FILE_ERROR = "file_error"
    TRANSPORT = "transport"


class ErrorCategory(Enum):
    """Retry-policy categories consumed by the job queue."""
    TRANSPORT = "transport"
    SERVER_SIDE = "server_side"
    CLIENT = "client"
    NOT_FOUND = "not_found"
    # Local persistence of a finished transcript failed
    STORAGE = "storage"

    @property
    def recoverable(self) -> bool:
        return self in (ErrorCategory.TRANSPORT, ErrorCategory.SERVER_SIDE, ErrorCategory.STORAGE)


_KIND_TO_CATEGORY = {
    ErrorKind.TRANSPORT: ErrorCategory.TRANSPORT,
    ErrorKind.SERVER_ERROR: ErrorCategory.SERVER_SIDE,
    ErrorKind.INVALID_RESPONSE: ErrorCategory.SERVER_SIDE,
    ErrorKind.NO_DATA: ErrorCategory.SERVER_SIDE,
    ErrorKind.PARSING_FAILED: ErrorCategory.SERVER_SIDE,
    ErrorKind.API_ERROR: ErrorCategory.CLIENT,
    ErrorKind.FILE_ERROR: ErrorCategory.CLIENT,
    ErrorKind.INVALID_ENDPOINT: ErrorCategory.CLIENT,
}


class TranscriptionError(Exception):
    """
    Structured failure raised by the transcription protocol client.

    Use the named constructors (`file_error`, `api_error`, ...) rather than
    instantiating directly.

    Attributes:
        kind: Protocol-level failure kind.
        message: Human-readable detail.
        status_code: HTTP status when the failure came from a response.
        credential_failure: True when the API rejected or lacks the key.
    """

    def __init__(
            self,
            kind: ErrorKind,
            message: str = "",
            *,
            status_code: Optional[int] = None,
            credential_failure: bool = False,
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.status_code = status_code
        self.credential_failure = credential_failure

    @property
    def category(self) -> ErrorCategory:
        return _KIND_TO_CATEGORY[self.kind]

    @property
    def recoverable(self) -> bool:
        return self.category.recoverable

    def __repr__(self) -> str:
        return (
            f"TranscriptionError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status_code={self.status_code!r})"
        )

    # --- Named constructors ---

    @classmethod
    def invalid_endpoint(cls, url: str) -> "TranscriptionError":
        return cls(ErrorKind.INVALID_ENDPOINT, f"Invalid endpoint URL: {url!r}")

    @classmethod
    def invalid_response(cls, detail: str = "Invalid response from server.") -> "TranscriptionError":
        return cls(ErrorKind.INVALID_RESPONSE, detail)

    @classmethod
    def api_error(
            cls,
            message: str,
            status_code: Optional[int] = None,
            credential_failure: bool = False,
    ) -> "TranscriptionError":
        return cls(
            ErrorKind.API_ERROR,
            message,
            status_code=status_code,
            credential_failure=credential_failure,
        )

    @classmethod
    def server_error(cls, status_code: int, message: str = "") -> "TranscriptionError":
        return cls(
            ErrorKind.SERVER_ERROR,
            message or f"Server error: {status_code}",
            status_code=status_code,
        )

    @classmethod
    def no_data(cls) -> "TranscriptionError":
        return cls(ErrorKind.NO_DATA, "No data received from server.")

    @classmethod
    def parsing_failed(cls, detail: str = "") -> "TranscriptionError":
        msg = "Failed to parse response"
        return cls(ErrorKind.PARSING_FAILED, f"{msg}: {detail}" if detail else f"{msg}.")

    @classmethod
    def file_error(cls, reason: str) -> "TranscriptionError":
        return cls(ErrorKind.FILE_ERROR, reason)

    @classmethod
    def transport(cls, reason: str) -> "TranscriptionError":
        return cls(ErrorKind.TRANSPORT, f"Network error: {reason}")


# -----------------------------------------------------------------------------
# QUEUE REPORTING MODELS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class JobOutcome:
    """
    Terminal or intermediate result of one job within a batch.

    Attributes:
        job_id: Recording identifier.
        success: Transcript stored and job removed.
        recoverable: For failures, whether the job stays queued.
        error: Failure message, empty on success.
        category: Retry-policy category of the failure, None on success or
                  for unexpected exceptions.
    """
    job_id: str
    success: bool
    recoverable: bool = False
    error: str = ""
    category: Optional[ErrorCategory] = None

    @property
    def dropped(self) -> bool:
        return not self.success and not self.recoverable


@dataclass(frozen=True)
class BatchReport:
    """
    Summary of one queue pass.

    Attributes:
        attempted: Number of ids in the batch snapshot.
        succeeded: Jobs transcribed and stored.
        failed: Jobs that failed, recoverable or not.
        remaining: Queue size after the batch.
        retry_scheduled: Whether a deferred re-attempt was armed.
        outcomes: Per-job outcomes in processing order.
    """
    attempted: int
    succeeded: int
    failed: int
    remaining: int
    retry_scheduled: bool = False
    outcomes: List[JobOutcome] = field(default_factory=list)

    @property
    def dropped(self) -> List[str]:
        return [o.job_id for o in self.outcomes if o.dropped]

    @property
    def still_pending(self) -> List[str]:
        return [o.job_id for o in self.outcomes if not o.success and o.recoverable]
