"""Test configuration and fixtures for json_translator.

This module provides:
- Logging switched off for the whole session
- A fresh sqlite database per test
- Fake translators (prefixing, failing, blocking)
- A chunk dispatcher with its own completion signals
- A Flask test client
"""

import os
import threading

os.environ.setdefault("JSON_TRANSLATOR_LOG_MODE", "off")

import pytest

from json_translator.ai.exceptions import TranslationError
from json_translator.config import DEFAULT_CONFIG, save_config
from json_translator.core import database
from json_translator.core.schema import initialize_database
from json_translator.translation.signals import CompletionSignals
from json_translator.translation.worker import ChunkDispatcher


# ============================================================================
# Fake translators
# ============================================================================


class PrefixTranslator:
    """Translates by prefixing the target language code."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def translate_batch(self, items, source_language, target_language, context=None):
        with self._lock:
            self.calls.append(list(items))
        return [(path, f"[{target_language}] {text}") for path, text in items]


class FailingTranslator(PrefixTranslator):
    """Fails every batch containing one of the given paths."""

    def __init__(self, fail_paths):
        super().__init__()
        self.fail_paths = set(fail_paths)
        self.failures = 0

    def translate_batch(self, items, source_language, target_language, context=None):
        if any(path in self.fail_paths for path, _ in items):
            with self._lock:
                self.failures += 1
            raise TranslationError("Provider unavailable")
        return super().translate_batch(items, source_language, target_language, context)


class BlockingTranslator(PrefixTranslator):
    """Blocks until released, then translates."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def translate_batch(self, items, source_language, target_language, context=None):
        self.release.wait(10)
        return super().translate_batch(items, source_language, target_language, context)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the database at a fresh file for every test."""
    db_file = tmp_path / "test_translations.db"
    monkeypatch.setattr(database, "DB_FILE", db_file)
    initialize_database()
    return db_file


@pytest.fixture
def settings():
    """Translation settings tuned for fast tests."""
    translation = dict(DEFAULT_CONFIG["translation"])
    translation.update({
        "chunk_size": 25,
        "chunk_retry_delay": 0,
        "completion_timeout": 10,
    })
    return translation


@pytest.fixture
def stored_settings(settings):
    """Persist the fast settings so code reading the config sees them."""
    config = dict(DEFAULT_CONFIG)
    config["translation"] = settings
    save_config(config)
    return settings


@pytest.fixture
def signals():
    return CompletionSignals()


@pytest.fixture
def dispatcher(signals):
    pool = ChunkDispatcher(max_workers=4, max_attempts=3, retry_delay=0, signals=signals)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def translator():
    return PrefixTranslator()


@pytest.fixture
def make_project():
    """Create a project and return its id."""

    def _make(data, source_language="en", name="Test project"):
        return database.create_project(name, source_language, data)

    return _make


@pytest.fixture
def sixty_leaf_document():
    """Two sections holding 60 leaves in total."""
    return {
        "home": {f"k{i:02d}": f"Home text {i}" for i in range(30)},
        "about": {f"k{i:02d}": f"About text {i}" for i in range(30)},
    }


@pytest.fixture
def client(stored_settings, monkeypatch):
    """Flask test client with AI config validation and the translator stubbed out."""
    from json_translator.web import create_app, tasks
    from json_translator.web.routes import translation as translation_routes

    monkeypatch.setattr(translation_routes, "validate_ai_config", lambda provider_override=None: None)
    monkeypatch.setattr(tasks, "_build_translator", lambda model_override=None, ai_provider=None: PrefixTranslator())

    app = create_app()
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client
    tasks.reset_dispatcher(wait=True)
