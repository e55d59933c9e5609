"""Tests for the chunk worker and dispatcher."""

import sqlite3

import pytest

from json_translator.core import database as db
from json_translator.translation.signals import CompletionSignals
from json_translator.translation.worker import (
    ChunkPayload,
    check_completion,
    format_failed_chunks_error,
    run_chunk,
    translate_chunk,
)

from conftest import FailingTranslator, PrefixTranslator


@pytest.fixture
def planned_task(make_project):
    """A task planned into two chunks: [a, b] and [c]."""
    project_id = make_project({"a": "A", "b": "B", "c": "C"})
    task_id = db.create_task(project_id, "en", "fr")
    db.update_task(task_id, status="processing")
    db.initialize_task_progress(task_id, total_keys=3, total_chunks=2)
    db.initialize_chunks(task_id, [2, 1])
    return project_id, task_id


def _payload(project_id, task_id, index, items):
    return ChunkPayload(
        task_id=task_id,
        project_id=project_id,
        chunk_index=index,
        items=items,
        source_language="en",
        target_language="fr",
        total_chunks=2,
    )


class TestTranslateChunk:
    """Test a single chunk attempt."""

    def test_success_persists_and_counts(self, planned_task):
        """Test records, chunk status and counters after success."""
        project_id, task_id = planned_task
        snapshot = translate_chunk(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), PrefixTranslator())

        assert snapshot == {"total_chunks": 2, "completed_chunks": 1, "failed_chunks": 0}
        chunk = db.get_chunks_for_task(task_id)[0]
        assert (chunk["status"], chunk["items_count"], chunk["translated_count"]) == ("completed", 2, 2)
        assert db.get_task(task_id)["translated_keys"] == 2
        records = {r["key"]: r for r in db.get_translations_by_task(task_id)}
        assert records["a"]["translated_text"] == "[fr] A"
        assert records["a"]["chunk_index"] == 0
        assert not records["a"]["failed"]

    def test_failure_writes_fallback_and_reraises(self, planned_task):
        """Test a failing attempt marks the chunk failed and keeps the source text."""
        project_id, task_id = planned_task
        with pytest.raises(Exception, match="Provider unavailable"):
            translate_chunk(_payload(project_id, task_id, 1, [("c", "C")]), FailingTranslator({"c"}))

        chunk = db.get_chunks_for_task(task_id)[1]
        assert chunk["status"] == "failed"
        assert "Provider unavailable" in chunk["error_message"]
        record = db.get_translations_by_task(task_id)[0]
        assert (record["key"], record["translated_text"], record["failed"]) == ("c", "C", True)
        # Counters are left to the retry wrapper
        task = db.get_task(task_id)
        assert (task["completed_chunks"], task["failed_chunks"], task["translated_keys"]) == (0, 0, 0)

    def test_fallback_written_when_marking_failed_errors(self, planned_task, monkeypatch):
        """Test fallback records survive a store error while marking the chunk failed."""
        project_id, task_id = planned_task
        real_update = db.update_chunk_status

        def update(task_id, chunk_index, status, **kwargs):
            if status == "failed":
                raise sqlite3.OperationalError("database is locked")
            return real_update(task_id, chunk_index, status, **kwargs)

        monkeypatch.setattr(db, "update_chunk_status", update)

        with pytest.raises(sqlite3.OperationalError):
            translate_chunk(_payload(project_id, task_id, 1, [("c", "C")]), FailingTranslator({"c"}))

        record = db.get_translations_by_task(task_id)[0]
        assert (record["key"], record["translated_text"], record["failed"]) == ("c", "C", True)

    def test_skipped_keys_get_fallback_records(self, planned_task):
        """Test keys the translator did not answer keep their source text."""
        project_id, task_id = planned_task

        class PartialTranslator:
            def translate_batch(self, items, source_language, target_language, context=None):
                return [("a", "Un"), ("zzz", "ignored")]

        translate_chunk(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), PartialTranslator())

        records = {r["key"]: r for r in db.get_translations_by_task(task_id)}
        assert set(records) == {"a", "b"}
        assert (records["b"]["translated_text"], records["b"]["failed"]) == ("B", True)
        assert db.get_task(task_id)["translated_keys"] == 1
        assert db.get_chunks_for_task(task_id)[0]["translated_count"] == 1


class TestRunChunk:
    """Test retries and the completion check."""

    def test_last_chunk_sends_signal(self, planned_task):
        """Test only the worker that finishes the last chunk signals completion."""
        project_id, task_id = planned_task
        signals = CompletionSignals()

        assert run_chunk(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), PrefixTranslator(), signals, 3, 0)
        assert signals.wait_for(task_id, timeout=0.05) is None

        assert run_chunk(_payload(project_id, task_id, 1, [("c", "C")]), PrefixTranslator(), signals, 3, 0)
        assert signals.wait_for(task_id, timeout=0.05) == {"task_id": task_id, "success": True, "error": None}

    def test_failed_chunk_counted_once_after_retries(self, planned_task):
        """Test three attempts then one failed chunk and a failure signal."""
        project_id, task_id = planned_task
        signals = CompletionSignals()
        translator = FailingTranslator({"c"})

        run_chunk(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), translator, signals, 3, 0)
        assert not run_chunk(_payload(project_id, task_id, 1, [("c", "C")]), translator, signals, 3, 0)

        assert translator.failures == 3
        task = db.get_task(task_id)
        assert (task["completed_chunks"], task["failed_chunks"]) == (1, 1)
        signal = signals.wait_for(task_id, timeout=0.05)
        assert signal["success"] is False
        assert signal["error"] == "1 chunk failed to translate"

    def test_retry_recovers(self, planned_task):
        """Test a chunk that fails once and then succeeds ends completed."""
        project_id, task_id = planned_task

        class FlakyTranslator(PrefixTranslator):
            def __init__(self):
                super().__init__()
                self.attempts = 0

            def translate_batch(self, items, source_language, target_language, context=None):
                self.attempts += 1
                if self.attempts == 1:
                    raise RuntimeError("503 Service Unavailable")
                return super().translate_batch(items, source_language, target_language, context)

        assert run_chunk(_payload(project_id, task_id, 1, [("c", "C")]), FlakyTranslator(), CompletionSignals(), 3, 0)
        task = db.get_task(task_id)
        assert (task["completed_chunks"], task["failed_chunks"]) == (1, 0)
        record = db.get_translations_by_task(task_id)[0]
        assert (record["translated_text"], record["failed"]) == ("[fr] C", False)
        chunk = db.get_chunks_for_task(task_id)[1]
        assert (chunk["status"], chunk["error_message"]) == ("completed", None)

    def test_storage_error_on_completion_counts_keys_once(self, make_project, monkeypatch):
        """Test a store error while completing a chunk is retried without double counting."""
        project_id = make_project({"a": "A", "b": "B"})
        task_id = db.create_task(project_id, "en", "fr")
        db.initialize_task_progress(task_id, total_keys=2, total_chunks=1)
        db.initialize_chunks(task_id, [2])

        real_complete_chunk = db.complete_chunk
        calls = []

        def locked_once(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_complete_chunk(*args, **kwargs)

        monkeypatch.setattr(db, "complete_chunk", locked_once)
        signals = CompletionSignals()

        assert run_chunk(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), PrefixTranslator(), signals, 3, 0)

        task = db.get_task(task_id)
        assert task["translated_keys"] <= task["total_keys"]
        assert (task["translated_keys"], task["completed_chunks"], task["failed_chunks"]) == (2, 1, 0)
        assert signals.wait_for(task_id, timeout=0.05)["success"] is True
        records = {r["key"]: r for r in db.get_translations_by_task(task_id)}
        assert (records["a"]["translated_text"], records["a"]["failed"]) == ("[fr] A", False)


class TestCheckCompletion:
    """Test the last-one-in rule."""

    def test_not_finished(self):
        signals = CompletionSignals()
        assert not check_completion(1, {"total_chunks": 3, "completed_chunks": 1, "failed_chunks": 1}, signals)
        assert not check_completion(1, None, signals)

    def test_finished_with_failures(self):
        signals = CompletionSignals()
        assert check_completion(1, {"total_chunks": 3, "completed_chunks": 1, "failed_chunks": 2}, signals)
        assert signals.wait_for(1, 0.05)["error"] == "2 chunks failed to translate"

    def test_error_wording(self):
        assert format_failed_chunks_error(1) == "1 chunk failed to translate"
        assert format_failed_chunks_error(4) == "4 chunks failed to translate"


class TestChunkDispatcher:
    """Test the bounded pool."""

    def test_dispatch_returns_future(self, planned_task, dispatcher, signals):
        """Test dispatched chunks run in the pool and signal completion."""
        project_id, task_id = planned_task
        futures = [
            dispatcher.dispatch(_payload(project_id, task_id, 0, [("a", "A"), ("b", "B")]), PrefixTranslator()),
            dispatcher.dispatch(_payload(project_id, task_id, 1, [("c", "C")]), PrefixTranslator()),
        ]
        assert all(future.result(timeout=10) for future in futures)
        assert signals.wait_for(task_id, timeout=1)["success"] is True
