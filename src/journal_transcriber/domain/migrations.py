from __future__ import annotations

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Keys used by the first mobile-era settings export
_LEGACY_KEY_RENAMES: Dict[str, str] = {
    "openAIAPIKey": "api_key",
    "useGPTProcessing": "refine_transcripts",
    "gptPrompt": "refinement_prompt",
}


def run_migrations(data: Dict[str, Any], default_state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Upgrade a raw config.json payload to the current schema.

    Args:
        data: The raw dictionary loaded from config.json.
        default_state: A clean instance of the current default state.

    Returns:
        Dict[str, Any]: The migrated state dictionary.
    """
    # 1. Flat schema (settings at root) -> {"app_settings": {...}}
    if "app_settings" not in data:
        logger.info("Migrations: Detected flat legacy schema. Upgrading...")
        flat = {k: v for k, v in data.items() if k != "version"}
        _rename_legacy_keys(flat)

        new_state = default_state
        new_state["app_settings"].update(flat)
        new_state["version"] = data.get("version", "1.0.0")
        return new_state

    # 2. Legacy camelCase keys -> current names
    if isinstance(data["app_settings"], dict):
        _rename_legacy_keys(data["app_settings"])
    else:
        logger.warning("Migrations: 'app_settings' is not an object. Discarding it.")
        data["app_settings"] = {}

    return data


def _rename_legacy_keys(settings: Dict[str, Any]) -> None:
    """Rename legacy keys in place, never overwriting a non-empty current value."""
    for old, new in _LEGACY_KEY_RENAMES.items():
        if old not in settings:
            continue
        value = settings.pop(old)
        if settings.get(new) in (None, ""):
            settings[new] = value
            logger.info(f"Migrations: '{old}' -> '{new}'")
