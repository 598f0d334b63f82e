from __future__ import annotations

"""
Transcription Protocol Client.

Turns one audio file into text through two remote calls:

1. speech-to-text: multipart/form-data upload (model, optional prompt and
   the binary audio part) answered by ``{"text": ...}``;
2. optional refinement: chat-completion request whose system message is the
   refinement prompt and whose user message is the stage-1 text.

The client is stateless across calls. Every failure is raised as a
`TranscriptionError` carrying a kind that the job queue maps onto its retry
policy.
"""

import logging
import mimetypes
import os
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from urllib3 import encode_multipart_formdata

from journal_transcriber.domain import constants as const
from journal_transcriber.domain.transcription_models import (
    TranscriptionError,
    TranscriptionResult,
)
from journal_transcriber.infra.network.common import build_headers

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

# Statuses worth retrying even though they are 4xx
_TRANSIENT_CLIENT_STATUSES = frozenset({408, 425, 429})
_CREDENTIAL_STATUSES = frozenset({401, 403})
_MAX_ERROR_BODY_CHARS = 500


# -----------------------------------------------------------------------------
# PAYLOAD ENCODING
# -----------------------------------------------------------------------------

def guess_audio_mime_type(file_path: str) -> str:
    """
    Derive the MIME type of an audio file from its extension.

    Args:
        file_path: Audio file path.

    Returns:
        str: MIME type, `audio/m4a` when undeterminable.
    """
    ext = os.path.splitext(file_path)[1].lower()
    if ext in const.AUDIO_MIME_TYPES:
        return const.AUDIO_MIME_TYPES[ext]

    guessed, _ = mimetypes.guess_type(file_path)
    if guessed:
        return guessed

    logger.warning(
        f"Could not determine MIME type for '{ext or file_path}'. "
        f"Using default {const.DEFAULT_AUDIO_MIME_TYPE}."
    )
    return const.DEFAULT_AUDIO_MIME_TYPE


def build_multipart_body(
        file_path: str,
        model: str,
        prompt: str = "",
        boundary: Optional[str] = None,
) -> Tuple[bytes, str]:
    """
    Encode the speech-to-text request as multipart/form-data.

    Parts, in order: ``model``, ``prompt`` (only when non-empty), ``file``.

    Args:
        file_path: Audio file to embed.
        model: Speech-to-text model identifier.
        prompt: Optional seed prompt.
        boundary: Explicit boundary; a random one is generated when omitted.

    Returns:
        Tuple[bytes, str]: (body, Content-Type header value with boundary).

    Raises:
        TranscriptionError: `file_error` if the audio cannot be read.
    """
    try:
        with open(file_path, "rb") as f:
            audio_data = f.read()
    except OSError as e:
        raise TranscriptionError.file_error(f"Failed to read audio file: {e}") from e

    fields: List[Tuple[str, Any]] = [("model", model)]
    if prompt:
        fields.append(("prompt", prompt))
    fields.append(
        ("file", (os.path.basename(file_path), audio_data, guess_audio_mime_type(file_path)))
    )

    return encode_multipart_formdata(fields, boundary=boundary)


# -----------------------------------------------------------------------------
# CLIENT
# -----------------------------------------------------------------------------

class TranscriptionClient:
    """
    Stateless two-stage transcription client.

    Args:
        api_key: Bearer credential for both endpoints.
        transcription_endpoint: Speech-to-text URL.
        refinement_endpoint: Chat-completion URL.
        transcription_model: Speech-to-text model identifier.
        refinement_model: Chat model identifier.
        transcription_prompt: Optional seed prompt sent with the audio.
        session: Object exposing `post` (e.g. requests.Session); defaults to
                 the requests module.
        max_file_bytes: Upload size ceiling.
        transcription_timeout: Stage-1 timeout in seconds.
        refinement_timeout: Stage-2 timeout in seconds.
    """

    def __init__(
            self,
            api_key: str,
            *,
            transcription_endpoint: str = const.TRANSCRIPTION_ENDPOINT,
            refinement_endpoint: str = const.REFINEMENT_ENDPOINT,
            transcription_model: str = const.TRANSCRIPTION_MODEL,
            refinement_model: str = const.REFINEMENT_MODEL,
            transcription_prompt: str = "",
            session: Optional[Any] = None,
            max_file_bytes: int = const.MAX_AUDIO_FILE_BYTES,
            transcription_timeout: float = const.TRANSCRIPTION_TIMEOUT,
            refinement_timeout: float = const.REFINEMENT_TIMEOUT,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.transcription_endpoint = transcription_endpoint
        self.refinement_endpoint = refinement_endpoint
        self.transcription_model = transcription_model
        self.refinement_model = refinement_model
        self.transcription_prompt = transcription_prompt
        self.max_file_bytes = max_file_bytes
        self.transcription_timeout = transcription_timeout
        self.refinement_timeout = refinement_timeout
        self._http: Any = session if session is not None else requests

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], session: Optional[Any] = None) -> "TranscriptionClient":
        """Build a client from a validated settings dictionary."""
        return cls(
            settings.get("api_key", ""),
            transcription_endpoint=settings["transcription_endpoint"],
            refinement_endpoint=settings["refinement_endpoint"],
            transcription_model=settings["transcription_model"],
            refinement_model=settings["refinement_model"],
            transcription_prompt=settings.get("transcription_prompt", ""),
            session=session,
        )

    # --- Public API ---

    def transcribe(
            self,
            file_path: str,
            requires_refinement: bool = False,
            refinement_prompt: str = const.DEFAULT_REFINEMENT_PROMPT,
            status_callback: Optional[StatusCallback] = None,
    ) -> TranscriptionResult:
        """
        Transcribe one audio file, optionally refining the text.

        Args:
            file_path: Audio file to upload.
            requires_refinement: Run the chat-completion stage.
            refinement_prompt: System instruction for the refinement stage.
            status_callback: Receives human-readable progress milestones.

        Returns:
            TranscriptionResult: ``(stage1, stage2)`` when refined, otherwise
            ``(None, stage1)``.

        Raises:
            TranscriptionError: On validation, transport, HTTP or parsing failure.
        """
        notify = _StatusNotifier(status_callback, step_prefix=requires_refinement)

        # 1. Pre-flight validation (never touches the network)
        self._validate_file(file_path, notify)

        # 2. Credential check
        if not self.api_key:
            notify("API key not configured. Please add your OpenAI API key in Settings.")
            raise TranscriptionError.api_error("API key not configured", credential_failure=True)

        # 3. Speech-to-text
        text = self._request_transcription(file_path, notify)

        if not requires_refinement:
            notify.plain("Transcription complete!")
            return TranscriptionResult(original=None, final=text)

        # 4. Refinement
        notify.plain("Step 1/2 Complete. Preparing for refinement...")
        refined = self.refine(text, refinement_prompt, status_callback)
        return TranscriptionResult(original=text, final=refined)

    def refine(
            self,
            text: str,
            prompt: str = const.DEFAULT_REFINEMENT_PROMPT,
            status_callback: Optional[StatusCallback] = None,
    ) -> str:
        """
        Run the chat-completion refinement stage on already transcribed text.

        Raises:
            TranscriptionError: On credential, transport, HTTP or parsing failure.
        """
        notify = _StatusNotifier(status_callback)
        notify("Step 2/2: Processing with advanced model...")

        if not self.api_key:
            notify("API key not configured. Please add your OpenAI API key in Settings.")
            raise TranscriptionError.api_error("API key not configured", credential_failure=True)

        payload = {
            "model": self.refinement_model,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": text},
            ],
        }

        notify("Step 2/2: Sending to advanced model...")
        response = self._post(
            self.refinement_endpoint,
            stage="refinement",
            timeout=self.refinement_timeout,
            json=payload,
            headers=build_headers(self.api_key),
        )
        notify(f"Step 2/2: Received response (Status: {response.status_code})")
        self._raise_for_status(response, stage="refinement", notify=notify)

        notify("Step 2/2: Processing refined transcription...")
        data = self._decode_json(response, notify)
        try:
            refined = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            notify("Failed to parse refined data.")
            raise TranscriptionError.parsing_failed(f"missing choices[0].message.content ({e})") from e

        if not isinstance(refined, str):
            notify("Failed to parse refined data.")
            raise TranscriptionError.parsing_failed("choices[0].message.content is not a string")

        logger.info(f"Refinement received ({len(refined)} chars).")
        notify("Transcription refinement complete!")
        return refined

    # --- Stages ---

    def _validate_file(self, file_path: str, notify: "_StatusNotifier") -> int:
        """Check existence and size limits; return the size in bytes."""
        if not os.path.isfile(file_path):
            notify.plain("Error: Audio file not found.")
            raise TranscriptionError.file_error(f"Audio file not found at '{file_path}'.")

        try:
            size = os.path.getsize(file_path)
        except OSError as e:
            notify.plain("Error accessing audio file details.")
            raise TranscriptionError.file_error(f"Could not access file attributes: {e}") from e

        size_mb = size / (1024 * 1024)
        logger.debug(f"Audio file '{os.path.basename(file_path)}': {size_mb:.2f} MB")

        if size == 0:
            logger.warning(f"Audio file is empty (0 bytes): {file_path}")
            notify.plain("Warning: Audio file is empty.")

        if size > self.max_file_bytes:
            limit_mb = self.max_file_bytes / (1024 * 1024)
            logger.error(f"Audio file too large ({size_mb:.1f}MB > {limit_mb:.0f}MB): {file_path}")
            notify.plain(f"Error: File too large ({size_mb:.1f}MB). Max {limit_mb:.0f}MB.")
            raise TranscriptionError.file_error(f"File size exceeds {limit_mb:.0f}MB limit.")

        return size

    def _request_transcription(self, file_path: str, notify: "_StatusNotifier") -> str:
        """Upload the audio and return the stage-1 transcript."""
        notify(f'Preparing "{os.path.basename(file_path)}" for transcription...')
        body, content_type = build_multipart_body(
            file_path, self.transcription_model, self.transcription_prompt
        )

        notify("Sending audio to OpenAI...")
        logger.info(f"Sending transcription request for {os.path.basename(file_path)} ({len(body)} bytes).")
        response = self._post(
            self.transcription_endpoint,
            stage="transcription",
            timeout=self.transcription_timeout,
            data=body,
            headers=build_headers(self.api_key, content_type),
        )
        notify(f"Received response (Status: {response.status_code})")
        self._raise_for_status(response, stage="transcription", notify=notify)

        notify("Processing initial transcription..." if notify.step_prefix else "Processing transcription...")
        data = self._decode_json(response, notify)
        text = data.get("text")
        if not isinstance(text, str):
            notify("Failed to parse transcription data.")
            raise TranscriptionError.parsing_failed("missing 'text' field")

        logger.info(f"Transcription received ({len(text)} chars).")
        return text

    # --- HTTP helpers ---

    def _post(self, url: str, *, stage: str, timeout: float, **kwargs: Any) -> Any:
        """POST with transport failures mapped onto the error taxonomy."""
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise TranscriptionError.invalid_endpoint(url)

        try:
            return self._http.post(url, timeout=timeout, **kwargs)
        except (requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            raise TranscriptionError.invalid_endpoint(url) from e
        except requests.exceptions.Timeout as e:
            logger.warning(f"Network: {stage} request timed out after {timeout}s.")
            raise TranscriptionError.transport(f"{stage} request timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Network: {stage} request failed: {e}")
            raise TranscriptionError.transport(str(e)) from e

    @staticmethod
    def _raise_for_status(response: Any, *, stage: str, notify: "_StatusNotifier") -> None:
        """Map a non-2xx response to the matching TranscriptionError."""
        status = response.status_code
        if 200 <= status < 300:
            return

        body = (response.text or "")[:_MAX_ERROR_BODY_CHARS]
        message = f"API Error ({status}): {body}" if body else f"Server error: {status}"
        logger.error(f"{stage.capitalize()} endpoint answered HTTP {status}: {body}")
        notify.plain(message)

        if status >= 500 or status in _TRANSIENT_CLIENT_STATUSES:
            raise TranscriptionError.server_error(status, message)
        if status in _CREDENTIAL_STATUSES:
            raise TranscriptionError.api_error(message, status_code=status, credential_failure=True)
        raise TranscriptionError.api_error(message, status_code=status)

    @staticmethod
    def _decode_json(response: Any, notify: "_StatusNotifier") -> Dict[str, Any]:
        """Decode a JSON object body."""
        if not response.content:
            notify.plain("No data received from server.")
            raise TranscriptionError.no_data()

        try:
            data = response.json()
        except ValueError as e:
            notify.plain("Error processing response data.")
            raise TranscriptionError.parsing_failed(f"invalid JSON ({e})") from e

        if not isinstance(data, dict):
            notify.plain("Error processing response data.")
            raise TranscriptionError.invalid_response(
                f"Invalid response from server: expected a JSON object, got {type(data).__name__}."
            )
        return data


class _StatusNotifier:
    """Forward progress milestones to an optional observer callback."""

    def __init__(self, callback: Optional[StatusCallback], step_prefix: bool = False) -> None:
        self._callback = callback
        self.step_prefix = step_prefix

    def __call__(self, message: str) -> None:
        self.plain(f"Step 1/2: {message}" if self.step_prefix else message)

    def plain(self, message: str) -> None:
        logger.debug(f"Status: {message}")
        if self._callback is None:
            return
        try:
            self._callback(message)
        except Exception as e:
            logger.warning(f"Status callback raised {type(e).__name__}: {e}")
