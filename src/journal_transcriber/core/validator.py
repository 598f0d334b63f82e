from __future__ import annotations

"""
Settings Validation Service.

Gatekeeper between untrusted settings sources (config.json, CLI overrides)
and the runtime components. Coerces types, validates endpoint URLs and
injects defaults so the monitor, client and queue never see malformed
values.
"""

import logging
from typing import Any, Dict, List, Tuple, Union
from urllib.parse import urlparse

from journal_transcriber.domain.config import get_default_settings

logger = logging.getLogger(__name__)

Number = Union[int, float]

# -----------------------------------------------------------------------------
# SCHEMA
# -----------------------------------------------------------------------------

_STRING_FIELDS = [
    "api_key", "transcription_model", "refinement_model",
    "transcription_prompt", "refinement_prompt", "reachability_host", "log_level",
]

_URL_FIELDS = ["transcription_endpoint", "refinement_endpoint", "quality_probe_url"]

_BOOL_FIELDS = ["refine_transcripts", "log_to_file"]

_POSITIVE_NUMBER_FIELDS = ["retry_delay_seconds", "reachability_interval_seconds"]

_PORT_FIELDS = ["reachability_port"]


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_settings(
        settings: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize a settings dictionary.

    Args:
        settings: Raw settings (usually a dictionary).
        strict: If True, raise on invalid values instead of coercing.

    Returns:
        Tuple[Dict[str, Any], List[str]]: Normalized settings and warnings.
    """
    warnings: List[str] = []
    defaults = get_default_settings()

    if not isinstance(settings, dict):
        msg = f"Invalid settings type: expected dict, received {type(settings).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    merged: Dict[str, Any] = dict(defaults)
    merged.update(settings)

    for field in _STRING_FIELDS:
        merged[field] = _as_str(merged.get(field), defaults[field], field, warnings, strict)

    for field in _URL_FIELDS:
        merged[field] = _as_url(merged.get(field), defaults[field], field, warnings, strict)

    for field in _BOOL_FIELDS:
        merged[field] = _as_bool(merged.get(field), defaults[field], field, warnings, strict)

    for field in _POSITIVE_NUMBER_FIELDS:
        merged[field] = _as_positive_number(
            merged.get(field), defaults[field], field, warnings, strict
        )
    for field in _PORT_FIELDS:
        merged[field] = _as_port(merged.get(field), defaults[field], field, warnings, strict)

    return merged, warnings


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _as_str(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    """Validate and strip string inputs."""
    if value is None:
        return fallback
    if isinstance(value, str):
        v = value.strip()
        return v if v else fallback

    msg = f"Invalid field '{field}': expected str, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_url(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    """Accept only absolute http(s) URLs."""
    url = _as_str(value, fallback, field, warnings, strict)
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return url

    msg = f"Invalid field '{field}': '{url}' is not an absolute http(s) URL."
    if strict:
        raise ValueError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_bool(value: Any, fallback: bool, field: str, warnings: List[str], strict: bool) -> bool:
    """Coerce various input types into native booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback

    if not strict:
        if isinstance(value, (int, float)) and value in (0, 1):
            warnings.append(f"Field '{field}' converted from number {value} to bool.")
            return bool(value)
        if isinstance(value, str):
            s = value.strip().lower()
            if s in ("true", "1", "yes", "y", "on"):
                warnings.append(f"Field '{field}' converted from '{value}' to True.")
                return True
            if s in ("false", "0", "no", "n", "off"):
                warnings.append(f"Field '{field}' converted from '{value}' to False.")
                return False

    msg = f"Invalid field '{field}': expected bool, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_positive_number(
        value: Any,
        fallback: Number,
        field: str,
        warnings: List[str],
        strict: bool,
) -> Number:
    """Accept strictly positive ints/floats, parsing numeric strings when lenient."""
    if value is None:
        return fallback

    candidate: Any = value
    if isinstance(value, str) and not strict:
        try:
            candidate = float(value.strip())
        except ValueError:
            candidate = None

    if isinstance(candidate, (int, float)) and not isinstance(candidate, bool) and candidate > 0:
        return candidate

    msg = f"Invalid field '{field}': expected a positive number, received {value!r}."
    if strict:
        raise ValueError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_port(value: Any, fallback: int, field: str, warnings: List[str], strict: bool) -> int:
    """Accept whole numbers in the TCP port range, parsing numeric strings when lenient."""
    if value is None:
        return fallback

    candidate: Any = value
    if isinstance(value, str) and not strict:
        try:
            candidate = float(value.strip())
        except ValueError:
            candidate = None

    if (
            isinstance(candidate, (int, float))
            and not isinstance(candidate, bool)
            and float(candidate).is_integer()
            and 0 < candidate <= 65535
    ):
        return int(candidate)

    msg = f"Invalid field '{field}': expected a port number (1-65535), received {value!r}."
    if strict:
        raise ValueError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback
