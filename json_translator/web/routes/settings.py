"""Settings management API routes."""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

import json_translator.config as config
from json_translator.config import BUILTIN_PROVIDERS, PROVIDER_DEFAULTS
from json_translator.logger import get_logger, refresh_log_mode
from json_translator.web import tasks

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)

PROVIDER_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
MASK_PREFIX = "****"
TOP_LEVEL_KEYS = ("ai_provider", "log_mode", "translation")
LOG_MODES = ("off", "info", "debug")

# Positive integer settings of the translation block
_TRANSLATION_INT_FIELDS = ("chunk_size", "max_concurrent_chunks", "chunk_max_attempts", "coordinator_max_attempts")


def mask_api_key(api_key: str) -> str:
    if not api_key or api_key == "YOUR_API_KEY_HERE":
        return api_key
    return f"{MASK_PREFIX}{api_key[-4:]}" if len(api_key) > 8 else MASK_PREFIX


def _is_provider_block(key: str, value: Any) -> bool:
    return key not in TOP_LEVEL_KEYS and isinstance(value, dict) and (
        key in BUILTIN_PROVIDERS or "api_key" in value
    )


def masked_config(current_config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the config with every provider api key masked."""
    result = copy.deepcopy(current_config)
    for key, value in result.items():
        if _is_provider_block(key, value) and "api_key" in value:
            value["api_key"] = mask_api_key(value["api_key"])
    return result


def validate_config(new_config: Dict[str, Any]) -> Optional[str]:
    """Return an error message for an invalid config update, None if valid."""
    if not isinstance(new_config, dict):
        return "config must be an object"

    provider = new_config.get("ai_provider")
    if provider is not None and (not isinstance(provider, str) or not re.match(PROVIDER_NAME_PATTERN, provider)):
        return f"Invalid AI provider: {provider}"

    log_mode = new_config.get("log_mode")
    if log_mode is not None and log_mode not in LOG_MODES:
        return f"log_mode must be one of {', '.join(LOG_MODES)}"

    for key, provider_config in new_config.items():
        if key in BUILTIN_PROVIDERS and not isinstance(provider_config, dict):
            return f"{key} config must be an object"
        if not _is_provider_block(key, provider_config):
            continue
        if not re.match(PROVIDER_NAME_PATTERN, key):
            return f"Invalid custom provider name: {key}. Only letters, numbers, hyphens, and underscores allowed."
        if "models" in provider_config:
            models = provider_config["models"]
            if not isinstance(models, list):
                return f"{key} models must be an array"
            if len([m for m in models if m and isinstance(m, str)]) > 5:
                return f"{key} can have at most 5 models"
        if "max_retries" in provider_config:
            retries = provider_config["max_retries"]
            if not isinstance(retries, int) or retries < 1:
                return f"{key} max_retries must be at least 1"
        if "timeout" in provider_config:
            timeout = provider_config["timeout"]
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                return f"{key} timeout must be a positive number"

    translation = new_config.get("translation")
    if translation is not None:
        if not isinstance(translation, dict):
            return "translation must be an object"
        for field in _TRANSLATION_INT_FIELDS:
            if field in translation:
                value = translation[field]
                if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                    return f"translation.{field} must be a positive integer"
        for field in ("completion_timeout", "chunk_retry_delay"):
            if field in translation:
                value = translation[field]
                if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                    return f"translation.{field} must be a non-negative number"
        if "variable_patterns" in translation:
            patterns = translation["variable_patterns"]
            if not isinstance(patterns, list):
                return "translation.variable_patterns must be an array"
            for pattern in patterns:
                try:
                    re.compile(pattern)
                except (re.error, TypeError):
                    return f"Invalid variable pattern: {pattern}"

    return None


@settings_bp.get("/")
def get_settings():
    """Return current configuration with api keys masked."""
    try:
        current_config = config.load_config()
        for provider in BUILTIN_PROVIDERS:
            current_config.setdefault(provider, copy.deepcopy(config.DEFAULT_CONFIG.get(provider, {})))

        logger.debug("Settings retrieved")
        return jsonify({
            "config": masked_config(current_config),
            "meta": {
                "builtin_providers": BUILTIN_PROVIDERS,
                "provider_defaults": PROVIDER_DEFAULTS,
                "provider_name_pattern": PROVIDER_NAME_PATTERN,
            },
        })
    except Exception as e:
        logger.error(f"Failed to retrieve settings: {e}")
        return jsonify({"error": "Failed to retrieve settings"}), 500


@settings_bp.put("/")
def update_settings():
    """Merge a config update into the stored configuration."""
    data = request.get_json(silent=True)
    if not data or "config" not in data:
        return jsonify({"error": "config is required"}), 400

    new_config = data["config"]
    validation_error = validate_config(new_config)
    if validation_error:
        return jsonify({"error": validation_error}), 400

    current_config = config.load_config()

    for key, value in new_config.items():
        if _is_provider_block(key, value):
            merged = dict(current_config.get(key) or {})
            # A masked key coming back from the UI means "unchanged"
            api_key = value.get("api_key")
            if isinstance(api_key, str) and api_key.startswith(MASK_PREFIX):
                value = {k: v for k, v in value.items() if k != "api_key"}
            merged.update(value)
            current_config[key] = merged
        elif key == "translation":
            merged = dict(current_config.get("translation") or {})
            merged.update(value)
            current_config["translation"] = merged
        else:
            current_config[key] = value

    try:
        config.save_config(current_config)
    except Exception:
        logger.exception("Failed to save settings")
        return jsonify({"error": "Failed to save settings"}), 500

    if "log_mode" in new_config:
        refresh_log_mode()
    if "translation" in new_config:
        # Running jobs keep the old pool until they finish
        tasks.reset_dispatcher(wait=False)

    logger.info("Settings updated")
    return jsonify({"config": masked_config(current_config)})
