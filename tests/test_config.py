"""Tests for stored configuration and language helpers."""

from json_translator import language_codes as lc
from json_translator.config import (
    DEFAULT_CONFIG,
    get_translation_settings,
    load_config,
    save_config,
)
from json_translator.core import database as db


class TestConfig:
    """Test config persistence in the app_config table."""

    def test_defaults_without_stored_config(self):
        """Test the defaults are used when nothing is stored."""
        assert load_config() == DEFAULT_CONFIG
        assert get_translation_settings()["chunk_size"] == 25

    def test_partial_translation_block_is_filled(self):
        """Test missing translation settings fall back to defaults."""
        save_config({"ai_provider": "deepseek", "translation": {"chunk_size": 5}})
        settings = get_translation_settings()
        assert settings["chunk_size"] == 5
        assert settings["completion_timeout"] == DEFAULT_CONFIG["translation"]["completion_timeout"]

    def test_corrupt_config_falls_back(self):
        """Test unparseable stored config yields the defaults."""
        db.set_app_config("config", "{not json")
        assert load_config()["ai_provider"] == "openai"

    def test_load_returns_copy(self):
        """Test callers cannot mutate the defaults."""
        load_config()["translation"]["chunk_size"] = 1
        assert DEFAULT_CONFIG["translation"]["chunk_size"] == 25


class TestLanguageCodes:
    """Test language helpers used by prompts and validation."""

    def test_validity(self):
        assert lc.is_valid_language_code("fr")
        assert lc.is_valid_language_code("zh-CN")
        assert not lc.is_valid_language_code("xx-bad")

    def test_context(self):
        assert lc.get_language_context("fr") == "French"
        assert lc.get_language_context("ar") == "Arabic - Right-to-left language"
        assert lc.get_language_context("qq") == "QQ"

    def test_match(self):
        assert lc.languages_match("en", "en-US")
        assert not lc.languages_match("en", "en-US", strict=True)
