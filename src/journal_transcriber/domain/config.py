from __future__ import annotations

"""
Configuration Domain Management.

Handles persistent storage of the transcription settings (API credential,
endpoints, models, prompts and scheduling knobs) as JSON inside the user
data directory. Supports schema migration and default fallback.
"""

import logging
import os
from typing import Any, Dict, Optional

from journal_transcriber.domain import constants as const
from journal_transcriber.domain.migrations import run_migrations
from journal_transcriber.infra.fs import atomic_write_json, get_user_data_dir, read_json

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
API_KEY_ENV_VAR = "OPENAI_API_KEY"


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
def get_config_path() -> str:
    """Absolute path of the persisted configuration file."""
    return os.path.join(get_user_data_dir(), CONFIG_FILE_NAME)


def get_default_settings() -> Dict[str, Any]:
    """
    Generate the default runtime settings.

    Returns:
        Dict[str, Any]: Default setting values.
    """
    return {
        # Credential
        "api_key": "",

        # Remote protocol
        "transcription_endpoint": const.TRANSCRIPTION_ENDPOINT,
        "refinement_endpoint": const.REFINEMENT_ENDPOINT,
        "transcription_model": const.TRANSCRIPTION_MODEL,
        "refinement_model": const.REFINEMENT_MODEL,
        "transcription_prompt": "",
        "refine_transcripts": True,
        "refinement_prompt": const.JOURNAL_REFINEMENT_PROMPT,

        # Connectivity
        "quality_probe_url": const.QUALITY_PROBE_URL,
        "reachability_host": const.REACHABILITY_HOST,
        "reachability_port": const.REACHABILITY_PORT,
        "reachability_interval_seconds": const.REACHABILITY_POLL_INTERVAL,

        # Queue
        "retry_delay_seconds": const.QUEUE_RETRY_DELAY,

        # Diagnostics
        "log_level": "INFO",
        "log_to_file": True,
    }


def get_default_app_state() -> Dict[str, Any]:
    """
    Generate the complete default structure of config.json.

    Returns:
        Dict[str, Any]: Versioned state with default settings.
    """
    return {
        "version": const.CURRENT_CONFIG_VERSION,
        "app_settings": get_default_settings(),
    }


# -----------------------------------------------------------------------------
# Persistence Logic
# -----------------------------------------------------------------------------
def load_app_state(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load application state from disk, migrating legacy schemas.

    Args:
        config_file: Explicit path; defaults to the user data directory.

    Returns:
        Dict[str, Any]: The loaded state or a default structure on failure.
    """
    path = config_file or get_config_path()
    default_state = get_default_app_state()

    data = read_json(path, default=None)
    if data is None:
        logger.debug("Config file not found or unreadable. Returning defaults.")
        return default_state

    if not isinstance(data, dict):
        logger.warning("Corrupted config file. Resetting to defaults.")
        return default_state

    migrated = run_migrations(data, get_default_app_state())

    state = default_state
    state["app_settings"].update(migrated.get("app_settings", {}))

    if migrated.get("version") != const.CURRENT_CONFIG_VERSION:
        state["version"] = const.CURRENT_CONFIG_VERSION
        save_app_state(state, path)

    return state


def save_app_state(state: Dict[str, Any], config_file: Optional[str] = None) -> None:
    """
    Persist application state to disk atomically.

    Args:
        state: The state dictionary to save.
        config_file: Explicit path; defaults to the user data directory.
    """
    path = config_file or get_config_path()
    state["version"] = const.CURRENT_CONFIG_VERSION
    try:
        atomic_write_json(path, state)
        logger.debug(f"Configuration saved to {path}")
    except OSError as e:
        logger.error(f"Failed to save configuration: {e}")


# -----------------------------------------------------------------------------
# Facade API
# -----------------------------------------------------------------------------
def load_settings(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Retrieve the active settings, with the API key falling back to the
    OPENAI_API_KEY environment variable when none is stored.
    """
    settings = get_default_settings()
    settings.update(load_app_state(config_file).get("app_settings", {}))

    if not str(settings.get("api_key") or "").strip():
        env_key = os.environ.get(API_KEY_ENV_VAR, "").strip()
        if env_key:
            logger.debug(f"Using API key from ${API_KEY_ENV_VAR}.")
            settings["api_key"] = env_key

    return settings


def save_settings(settings: Dict[str, Any], config_file: Optional[str] = None) -> None:
    """Persist `settings` as the active app_settings block."""
    state = load_app_state(config_file)
    state["app_settings"].update(settings)
    save_app_state(state, config_file)
