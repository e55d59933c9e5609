
import copy
import json
from typing import Dict, Any

from json_translator.core import database as db
from json_translator.core.schema import initialize_database
from json_translator.logger import get_logger

logger = get_logger(__name__)

# Translation job constants
DEFAULT_CHUNK_SIZE = 25  # Leaves per chunk dispatched to one worker
MAX_CONCURRENT_CHUNKS = 20  # In-flight chunk workers
CHUNK_MAX_ATTEMPTS = 3
COORDINATOR_MAX_ATTEMPTS = 2
COMPLETION_TIMEOUT_SECONDS = 30 * 60
MAX_CONTEXT_LENGTH = 2000
DEFAULT_SYSTEM_MESSAGE = "You are a professional translator. Return only valid JSON."

# Provider configuration constants
BUILTIN_PROVIDERS = ["openai", "deepseek", "gemini"]

PROVIDER_DEFAULTS = {
    "max_retries": 3,
    "timeout": 120
}

# Default prompts
DEFAULT_PROMPTS = {
    "chunk_translation_prompt": {
        "version": "1.0",
        "description": "Key-value translation prompt for translate_batch",
        "prompt": """You are a professional translator specializing in software localization. Translate the values of the JSON key-value pairs below from {source_language_context} to {target_language_context}.
{context_section}

CRITICAL RULES:
1. NEVER translate content within double curly braces like {{{{name}}}}, {{{{count}}}}, etc.
2. NEVER translate content within single curly braces like {{username}}, {{date}}, etc.
3. NEVER translate HTML tags like <b>, </b>, <span>, etc.
4. NEVER translate placeholder values like %s, %d, {{0}}, {{1}}, etc.
5. Preserve placeholders __VAR_0__, __VAR_1__, ... EXACTLY as they appear
6. Preserve the exact key names - only translate the values
7. Keep translations concise and natural for the target language
8. If a value seems to be a proper noun (like a company name), keep it unchanged{rtl_section}

Pairs to translate ({text_count} items):
{pairs_json}

Return format: {{"translations": [{{"key": "<key>", "translated": "<translated value>"}}, ...]}}
Return ONLY the JSON object, without explanations or markdown code blocks."""
    }
}

# Default configuration templates
DEFAULT_CONFIG = {
    "ai_provider": "openai",
    "openai": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["gpt-5-mini", "gpt-4o-mini"],  # First is default
        "max_retries": 3,
        "timeout": 120,
        "api_url": "https://api.openai.com/v1/chat/completions"
    },
    "deepseek": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["deepseek-chat"],
        "max_retries": 3,
        "timeout": 120,
        "api_url": "https://api.deepseek.com/chat/completions"
    },
    "gemini": {
        "api_key": "YOUR_API_KEY_HERE",
        "models": ["gemini-2.5-flash"],
        "max_retries": 3,
        "timeout": 120,
    },
    "translation": {
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "max_concurrent_chunks": MAX_CONCURRENT_CHUNKS,
        "chunk_max_attempts": CHUNK_MAX_ATTEMPTS,
        "chunk_retry_delay": 2.0,
        "coordinator_max_attempts": COORDINATOR_MAX_ATTEMPTS,
        "completion_timeout": COMPLETION_TIMEOUT_SECONDS,
        "preserve_variables": True,
        "variable_patterns": [
            r"\{\{[^}]+\}\}",
            r"\$\{[^}]+\}",
            r"\{[^}]+\}",
            r"%[sd]",
            r"<[^>]+>",
        ]
    },
    "log_mode": "info"
}


def initialize_app():
    """
    Initialize the application.
    Creates the database and stores the default configuration on first run.
    """
    logger.info("Initializing application...")

    initialize_database()
    logger.info("Database initialized")

    try:
        if not db.get_app_config('config'):
            logger.info("No config in database, initializing default config")
            save_config(DEFAULT_CONFIG)
        else:
            logger.debug("Config already exists in database")
    except Exception as e:
        logger.error(f"Failed to check/initialize config in database: {e}")
        logger.warning("Application will use in-memory default configuration")

    logger.info("Application initialization complete")


def load_config() -> Dict[str, Any]:
    """Load the configuration from database, falling back to defaults."""
    try:
        config_json = db.get_app_config('config')
    except Exception as e:
        logger.error(f"Failed to load config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not config_json:
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        config = json.loads(config_json)
        logger.debug("Configuration loaded from database")
        return config
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any]):
    """Save the configuration to database."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        db.set_app_config('config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise


def get_translation_settings() -> Dict[str, Any]:
    """Translation block of the config with defaults filled in for missing keys."""
    settings = dict(DEFAULT_CONFIG["translation"])
    settings.update(load_config().get("translation", {}))
    return settings


def get_prompt(prompt_name: str = "chunk_translation_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    return DEFAULT_PROMPTS.get(prompt_name, DEFAULT_PROMPTS["chunk_translation_prompt"])
