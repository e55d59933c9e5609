"""
AI Provider API Implementations

HTTP calls for each provider:
- OpenAI, DeepSeek and custom providers (OpenAI-compatible chat completions)
- Gemini (generateContent)

Each function takes an AIService instance and a prompt, returns the raw text response.
"""

from typing import Any, Dict
import httpx

from json_translator.logger import get_logger
from json_translator.ai.exceptions import TranslationError

logger = get_logger(__name__)

PLACEHOLDER_API_KEY = "YOUR_API_KEY_HERE"


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    timeout_value = float(timeout_config) if timeout_config else 120.0
    return httpx.Timeout(connect=10.0, write=60.0, read=timeout_value, pool=10.0)


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Raise a TranslationError carrying the provider's error message and status code."""
    status_code = e.response.status_code
    try:
        error_json = e.response.json()
        error_detail = error_json.get("error", error_json) if isinstance(error_json, dict) else error_json
        if isinstance(error_detail, dict):
            error_text = error_detail.get("message", str(error_detail))
        else:
            error_text = str(error_detail)
    except ValueError:
        error_text = e.response.text[:500]

    raise TranslationError(
        f"{provider} API error ({status_code}): {error_text}",
        code="provider_http_error",
        details={"status_code": status_code},
    )


def _require_api_key(provider_config: Dict[str, Any], provider: str) -> str:
    api_key = provider_config.get('api_key', '')
    if not api_key or api_key == PLACEHOLDER_API_KEY:
        raise TranslationError(f"{provider} API key not configured", code="ai_config_missing")
    return api_key


def _post_chat_completion(service, provider: str, api_url: str, api_key: str,
                          model: str, timeout: Any, prompt: str) -> str:
    """POST an OpenAI-compatible chat completion and return the message content."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": service.get_system_message()},
            {"role": "user", "content": prompt},
        ],
    }

    logger.debug(f"  Calling {provider} API (model: {model})...")

    try:
        with httpx.Client(timeout=get_httpx_timeout(timeout)) as client:
            response = client.post(api_url, headers=headers, json=body)
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, provider)
    except httpx.TimeoutException:
        raise TranslationError(f"{provider} API request timeout", code="provider_timeout")
    except httpx.HTTPError as e:
        raise TranslationError(f"{provider} API call failed: {e}", code="provider_unreachable")

    usage = result.get('usage') or {}
    service.record_usage(usage.get('prompt_tokens', 0), usage.get('completion_tokens', 0))

    choices = result.get('choices') or []
    if choices:
        content = choices[0].get('message', {}).get('content') or ''
        logger.debug(f"  Received {len(content)} chars from {provider}")
        return content

    raise TranslationError(f"No content in {provider} response", code="provider_bad_response")


def call_openai_api_text(service, prompt: str) -> str:
    """Call OpenAI chat completions and return text response."""
    provider_config = service.config.get('openai', {})
    return _post_chat_completion(
        service,
        "OpenAI",
        provider_config.get('api_url', 'https://api.openai.com/v1/chat/completions'),
        _require_api_key(provider_config, "OpenAI"),
        service.get_model(provider_config, 'gpt-4o-mini'),
        provider_config.get('timeout', 120),
        prompt,
    )


def call_deepseek_api_text(service, prompt: str) -> str:
    """Call DeepSeek API and return text response."""
    provider_config = service.config.get('deepseek', {})
    return _post_chat_completion(
        service,
        "DeepSeek",
        provider_config.get('api_url', 'https://api.deepseek.com/chat/completions'),
        _require_api_key(provider_config, "DeepSeek"),
        service.get_model(provider_config, 'deepseek-chat'),
        provider_config.get('timeout', 120),
        prompt,
    )


def call_custom_provider_api_text(service, prompt: str) -> str:
    """Call a custom provider using the OpenAI-compatible format."""
    provider = service.provider
    provider_config = service.config.get(provider, {})
    label = f"Custom provider '{provider}'"
    api_url = provider_config.get('api_url', '')
    model = service.get_model(provider_config, '')

    if not api_url:
        raise TranslationError(f"{label} API URL not configured", code="ai_config_missing")
    if not model:
        raise TranslationError(f"{label} model not configured", code="ai_config_missing")

    return _post_chat_completion(
        service,
        label,
        api_url,
        _require_api_key(provider_config, label),
        model,
        provider_config.get('timeout', 120),
        prompt,
    )


def call_gemini_api(service, prompt: str) -> str:
    """Call Gemini generateContent and return text response."""
    provider_config = service.config.get('gemini', {})
    api_key = _require_api_key(provider_config, "Gemini")
    model = service.get_model(provider_config, 'gemini-2.5-flash')
    url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    body = {
        "systemInstruction": {"parts": [{"text": service.get_system_message()}]},
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "maxOutputTokens": 8192,
            "responseMimeType": "application/json",
        }
    }

    logger.debug(f"  Calling Gemini API (model: {model})...")

    try:
        with httpx.Client(timeout=get_httpx_timeout(provider_config.get('timeout', 120))) as client:
            response = client.post(url, params={"key": api_key}, json=body)
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPStatusError as e:
        handle_http_error(e, "Gemini")
    except httpx.TimeoutException:
        raise TranslationError("Gemini API request timeout", code="provider_timeout")
    except httpx.HTTPError as e:
        raise TranslationError(f"Gemini API call failed: {e}", code="provider_unreachable")

    usage_metadata = result.get('usageMetadata') or {}
    prompt_tokens = usage_metadata.get('promptTokenCount', 0)
    completion_tokens = usage_metadata.get('candidatesTokenCount', 0)
    # Some models only report the total
    if completion_tokens == 0 and prompt_tokens > 0:
        completion_tokens = max(usage_metadata.get('totalTokenCount', 0) - prompt_tokens, 0)
    service.record_usage(prompt_tokens, completion_tokens)

    candidates = result.get('candidates') or []
    if candidates:
        parts = candidates[0].get('content', {}).get('parts') or []
        if parts:
            return parts[0].get('text', '')

    raise TranslationError(f"Unexpected Gemini API response format: {result}", code="provider_bad_response")
