"""
AI Translation Service Module

This module provides the translator used by chunk workers:
- AIService.translate_batch: (key path, text) pairs in, (key path, translation) pairs out
- Configuration validation
- Error categorisation and retry logic

For provider-specific API implementations, see ai/providers.py
"""

import json
import threading
import time
from typing import List, Dict, Any, Tuple, Optional

from json_translator.config import BUILTIN_PROVIDERS, DEFAULT_SYSTEM_MESSAGE, load_config, get_prompt
from json_translator.logger import get_logger
from json_translator import language_codes as lc
from json_translator.ai.exceptions import TranslationError
from json_translator.translation.utils import (
    parse_translations_response,
    replace_variables_with_placeholders,
    restore_variables_from_placeholders,
)

logger = get_logger(__name__)


def _provider_display(provider: str) -> str:
    if provider in BUILTIN_PROVIDERS:
        return provider.capitalize()
    return provider.replace('-', ' ').title()


def validate_ai_config(provider_override: Optional[str] = None) -> None:
    """
    Validate that AI provider configuration is properly set up.

    Raises:
        TranslationError: If configuration is invalid or missing, with code and details.
    """
    config = load_config()
    provider = provider_override or config.get('ai_provider', 'openai')

    provider_config = config.get(provider)
    if not isinstance(provider_config, dict) or not provider_config:
        raise TranslationError(
            f"AI provider '{provider}' configuration not found",
            code="ai_config_missing",
            details={"provider": provider}
        )

    api_key = provider_config.get('api_key', '')
    if not api_key or api_key == "YOUR_API_KEY_HERE":
        raise TranslationError(
            f"{_provider_display(provider)} API key not configured. Please set it in Settings.",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "api_key"}
        )

    models = provider_config.get('models') or []
    valid_models = [m for m in models if m and isinstance(m, str)] if isinstance(models, list) else []
    if not valid_models and not provider_config.get('model'):
        raise TranslationError(
            f"{_provider_display(provider)} model not configured",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "models"}
        )


class AIService:
    """AI-backed translator for batches of keyed strings."""

    def __init__(self, model_override: Optional[str] = None, provider_override: Optional[str] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_config()
        self.provider = provider_override or self.config.get('ai_provider', 'openai')
        self.model_override = model_override
        self.translation_config = self.config.get('translation', {})
        # Chunk workers share one service
        self._usage_lock = threading.Lock()
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        logger.info(f"Initialized AI service with provider: {self.provider}"
                    + (f", model override: {model_override}" if model_override else ""))

    def get_model(self, provider_config: Dict[str, Any], default_model: str = "") -> str:
        """
        Get the model to use for translation.

        Priority: model_override, first entry of 'models', legacy 'model', default_model.
        """
        if self.model_override:
            return self.model_override

        models = provider_config.get('models', [])
        if models and isinstance(models, list) and models[0]:
            return models[0]

        return provider_config.get('model', default_model)

    def get_system_message(self) -> str:
        return self.translation_config.get('system_message', DEFAULT_SYSTEM_MESSAGE)

    def record_usage(self, prompt_tokens: int, completion_tokens: int) -> None:
        """Log token usage of one provider call and add it to the totals."""
        prompt_tokens = prompt_tokens or 0
        completion_tokens = completion_tokens or 0
        with self._usage_lock:
            self.total_prompt_tokens += prompt_tokens
            self.total_completion_tokens += completion_tokens
        logger.debug(f"Token usage: {prompt_tokens} prompt, {completion_tokens} completion")

    def get_total_token_usage(self) -> Dict[str, int]:
        with self._usage_lock:
            return {
                'prompt_tokens': self.total_prompt_tokens,
                'completion_tokens': self.total_completion_tokens,
            }

    def translate_batch(
        self,
        items: List[Tuple[str, str]],
        source_language: str,
        target_language: str,
        context: Optional[str] = None,
    ) -> List[Tuple[str, str]]:
        """
        Translate a batch of (key path, source text) pairs.

        Template variables are swapped for placeholders before the call and
        restored afterwards, so they come back verbatim. Only keys present
        in the input are returned; order is not guaranteed.

        Raises:
            TranslationError: when every attempt fails
        """
        if not items:
            return []

        preserve = self.translation_config.get('preserve_variables', True)
        patterns = self.translation_config.get('variable_patterns', [])

        protected_items = []
        placeholder_maps: Dict[str, Dict[str, str]] = {}
        for key, text in items:
            protected_text, placeholder_map = replace_variables_with_placeholders(text, patterns, preserve)
            protected_items.append((key, protected_text))
            placeholder_maps[key] = placeholder_map

        prompt = self._build_prompt(protected_items, source_language, target_language, context)
        logger.debug(f"Translating {len(items)} strings from {source_language} to {target_language}")

        max_retries = max(int(self.config.get(self.provider, {}).get('max_retries', 3)), 1)
        last_error: Optional[Exception] = None

        for attempt in range(max_retries):
            try:
                if attempt > 0:
                    logger.info(f"  Retry attempt {attempt + 1}/{max_retries}")

                response_text = self._call_ai_api_text(prompt)
                pairs = parse_translations_response(response_text)
                if pairs is None:
                    raise TranslationError("Could not parse translations from response", code="parse_error")

                results = []
                for key, translated in pairs:
                    if key not in placeholder_maps:
                        logger.warning(f"Translator returned unknown key '{key}', ignoring")
                        continue
                    results.append((key, restore_variables_from_placeholders(translated, placeholder_maps[key])))

                logger.info(f"Successfully translated {len(results)}/{len(items)} strings")
                return results

            except Exception as e:
                last_error = e
                should_retry, wait_time = self._categorize_error(e, attempt)

                if should_retry and attempt < max_retries - 1:
                    logger.warning(f"  Attempt {attempt + 1} failed: {e}. Waiting {wait_time}s before retry...")
                    time.sleep(wait_time)
                elif not should_retry:
                    logger.error(f"  Non-recoverable error: {e}")
                    break

        if isinstance(last_error, TranslationError):
            raise last_error
        raise TranslationError(f"Translation failed: {last_error}") from last_error

    def _build_prompt(
        self,
        items: List[Tuple[str, str]],
        source_language: str,
        target_language: str,
        context: Optional[str],
    ) -> str:
        """Build the key-value translation prompt from the configured template."""
        prompt_template = get_prompt('chunk_translation_prompt')['prompt']

        rtl_section = ""
        if lc.is_rtl(target_language):
            rtl_section = (
                f"\n9. The target language ({lc.get_language_context(target_language)}) is written "
                "right-to-left. Ensure proper text direction handling."
            )

        return prompt_template.format(
            source_language_context=lc.get_language_context(source_language),
            target_language_context=lc.get_language_context(target_language),
            context_section=f"\nProject context: {context}" if context else "",
            rtl_section=rtl_section,
            text_count=len(items),
            pairs_json=json.dumps([{"key": key, "value": text} for key, text in items], ensure_ascii=False, indent=1),
        )

    def _call_ai_api_text(self, prompt: str) -> str:
        """Dispatch the prompt to the configured provider and return raw text."""
        from json_translator.ai.providers import (
            call_gemini_api,
            call_openai_api_text,
            call_deepseek_api_text,
            call_custom_provider_api_text,
        )

        if self.provider == 'gemini':
            return call_gemini_api(self, prompt)
        elif self.provider == 'openai':
            return call_openai_api_text(self, prompt)
        elif self.provider == 'deepseek':
            return call_deepseek_api_text(self, prompt)
        return call_custom_provider_api_text(self, prompt)

    def _categorize_error(self, error: Exception, attempt: int) -> Tuple[bool, float]:
        """
        Categorize an error and determine retry strategy.

        Returns:
            Tuple of (should_retry, wait_time_seconds)
        """
        error_str = str(error).lower()
        code = getattr(error, 'code', None)

        if code == 'ai_config_missing':
            return False, 0

        # Rate limiting (429) - long backoff
        if '429' in error_str or 'rate limit' in error_str or 'too many requests' in error_str:
            return True, min(30 * (2 ** attempt), 300)

        # Authentication errors - don't retry
        if '401' in error_str or '403' in error_str or 'unauthorized' in error_str or 'forbidden' in error_str:
            return False, 0

        # Invalid request - don't retry
        if '400' in error_str and ('invalid' in error_str or 'bad request' in error_str):
            return False, 0

        if any(status in error_str for status in ('500', '502', '503', '504')):
            return True, 2 ** attempt

        if 'timeout' in error_str:
            return True, 5 * (2 ** attempt)

        # Parse errors - retry once
        if code == 'parse_error' or 'parse' in error_str or 'json' in error_str:
            return attempt < 1, 1.0

        return True, 2 ** attempt
