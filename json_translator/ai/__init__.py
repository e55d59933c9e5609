"""
AI Module

Translator capability used by chunk workers: AIService turns a batch of
(key path, source text) pairs into (key path, translated text) pairs.
"""

from json_translator.ai.exceptions import TranslationError
from json_translator.ai.service import AIService, validate_ai_config

__all__ = ['TranslationError', 'AIService', 'validate_ai_config']
