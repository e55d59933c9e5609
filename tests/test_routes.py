"""Tests for the Flask API."""

import time

import pytest

from json_translator.core import database as db
from json_translator.web import tasks

from conftest import PrefixTranslator


def _wait_for_task(client, task_id, timeout=10.0):
    """Poll task progress until it reaches a terminal status."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        progress = client.get(f"/api/tasks/{task_id}/progress").get_json()["progress"]
        if progress["status"] in ("completed", "failed"):
            return progress
        time.sleep(0.05)
    raise AssertionError(f"Task {task_id} did not finish in {timeout}s")


def _create_project(client, data, source_language="en"):
    response = client.post("/api/projects/", json={"name": "Site", "source_language": source_language, "data": data})
    assert response.status_code == 201
    return response.get_json()["project"]["id"]


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert "error" in response.get_json()


class TestProjects:
    """Test project CRUD routes."""

    def test_create_get_list_delete(self, client):
        """Test the project lifecycle over HTTP."""
        project_id = _create_project(client, {"home": {"title": "Hello"}, "footer": "Bye"})

        detail = client.get(f"/api/projects/{project_id}").get_json()
        assert detail["project"]["original_data"] == {"home": {"title": "Hello"}, "footer": "Bye"}
        assert detail["key_count"] == 2
        assert [p["id"] for p in client.get("/api/projects/").get_json()["projects"]] == [project_id]

        assert client.delete(f"/api/projects/{project_id}").get_json() == {"status": "deleted"}
        assert client.get(f"/api/projects/{project_id}").status_code == 404

    def test_document_as_json_string(self, client):
        """Test uploaded file contents are parsed."""
        project_id = _create_project(client, '{"a": "b"}')
        assert db.get_project_by_id(project_id)["original_data"] == {"a": "b"}

    def test_create_validation(self, client):
        """Test missing fields, bad language and non-object documents are rejected."""
        missing = client.post("/api/projects/", json={"name": "x"})
        assert missing.status_code == 400
        assert set(missing.get_json()["missing_fields"]) == {"source_language", "data"}

        bad_language = client.post("/api/projects/", json={"name": "x", "source_language": "zz-99", "data": {}})
        assert bad_language.status_code == 400

        not_object = client.post("/api/projects/", json={"name": "x", "source_language": "en", "data": ["a"]})
        assert not_object.status_code == 400

        bad_json = client.post("/api/projects/", json={"name": "x", "source_language": "en", "data": "{oops"})
        assert bad_json.status_code == 400


class TestTranslationJobs:
    """Test starting jobs and reading their progress and results."""

    def test_translate_and_fetch_result(self, client):
        """Test a job runs in the background and its result is served."""
        project_id = _create_project(client, {"title": "Hello", "nav": {"home": "Home"}})

        response = client.post(f"/api/projects/{project_id}/translate", json={"target_language": "fr"})
        assert response.status_code == 202
        task_id = response.get_json()["task"]["id"]

        progress = _wait_for_task(client, task_id)
        assert progress["status"] == "completed"
        assert progress["percentage"] == 100
        assert progress["estimated_time_remaining"] is None

        result = client.get(f"/api/tasks/{task_id}/result").get_json()
        assert result["data"] == {"title": "[fr] Hello", "nav": {"home": "[fr] Home"}}

        project_progress = client.get(f"/api/projects/{project_id}/progress?target_language=fr").get_json()
        assert project_progress["progress"]["task_id"] == task_id

        task_list = client.get(f"/api/projects/{project_id}/tasks").get_json()["tasks"]
        assert [t["id"] for t in task_list] == [task_id]
        assert "translated_data" not in task_list[0]

        stats = client.get(f"/api/projects/{project_id}/stats?target_language=fr").get_json()
        assert (stats["total"], stats["successful"], stats["failed"]) == (2, 2, 0)

        sources = client.get("/api/translations/cache-sources?source_language=en&target_language=fr").get_json()
        assert sources["project_ids"] == [project_id]

    def test_selected_keys_job(self, client):
        """Test selected keys leave other keys unchanged."""
        project_id = _create_project(client, {"title": "Hi", "body": "Bye"})
        response = client.post(
            f"/api/projects/{project_id}/translate",
            json={"target_language": "fr", "selected_keys": ["title"], "context": "Landing page"},
        )
        task = response.get_json()["task"]
        assert task["selected_keys"] == ["title"]
        assert task["context"] == "Landing page"

        assert _wait_for_task(client, task["id"])["status"] == "completed"
        assert client.get(f"/api/tasks/{task['id']}/result").get_json()["data"] == {"title": "[fr] Hi", "body": "Bye"}

    def test_start_validation(self, client):
        """Test bad job requests are rejected before a task is created."""
        project_id = _create_project(client, {"a": "b"})
        url = f"/api/projects/{project_id}/translate"

        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={"target_language": "en"}).status_code == 400
        assert client.post(url, json={"target_language": "xx-bad"}).status_code == 400
        assert client.post(url, json={"target_language": "fr", "selected_keys": "a"}).status_code == 400
        assert client.post(url, json={"target_language": "fr", "context": "x" * 2001}).status_code == 400
        assert client.post(url, json={"target_language": "fr", "cache_project_id": 999}).status_code == 404
        assert client.post("/api/projects/999/translate", json={"target_language": "fr"}).status_code == 404
        assert db.get_tasks_by_project(project_id) == []

    def test_result_of_unfinished_task(self, client):
        """Test the result endpoint refuses tasks that did not complete."""
        project_id = _create_project(client, {"a": "b"})
        task_id = db.create_task(project_id, "en", "fr")
        response = client.get(f"/api/tasks/{task_id}/result")
        assert response.status_code == 409
        assert response.get_json()["status"] == "pending"
        assert client.get("/api/tasks/999/result").status_code == 404
        assert client.get("/api/tasks/999/progress").status_code == 404


class TestTranslationRecords:
    """Test listing and manually editing cached translations."""

    def test_manual_edit_is_listed_and_reused(self, client):
        """Test a saved edit shows in the listing and a later job keeps it."""
        project_id = _create_project(client, {"title": "Hello", "nav": {"home": "Home"}})

        response = client.post(
            f"/api/projects/{project_id}/translations",
            json={"key": "nav.home", "translated_text": "Accueil", "target_language": "fr"},
        )
        assert response.status_code == 200
        saved = response.get_json()["translation"]
        assert (saved["key"], saved["source_text"], saved["translated_text"]) == ("nav.home", "Home", "Accueil")
        assert saved["task_id"] is None

        listed = client.get(f"/api/projects/{project_id}/translations?target_language=fr").get_json()["translations"]
        assert [(r["key"], r["translated_text"]) for r in listed] == [("nav.home", "Accueil")]

        task_id = client.post(f"/api/projects/{project_id}/translate", json={"target_language": "fr"}).get_json()["task"]["id"]
        assert _wait_for_task(client, task_id)["status"] == "completed"
        result = client.get(f"/api/tasks/{task_id}/result").get_json()
        assert result["data"] == {"title": "[fr] Hello", "nav": {"home": "Accueil"}}

    def test_manual_edit_replaces_job_result(self, client):
        """Test an edit overwrites the record a job wrote for the same key."""
        project_id = _create_project(client, {"title": "Hello"})
        task_id = client.post(f"/api/projects/{project_id}/translate", json={"target_language": "fr"}).get_json()["task"]["id"]
        _wait_for_task(client, task_id)

        client.post(
            f"/api/projects/{project_id}/translations",
            json={"key": "title", "source_text": "Hello", "translated_text": "Salut", "target_language": "fr"},
        )
        listed = client.get(f"/api/projects/{project_id}/translations?target_language=fr").get_json()["translations"]
        assert [(r["key"], r["translated_text"]) for r in listed] == [("title", "Salut")]

    def test_validation(self, client):
        """Test bad record requests are rejected."""
        project_id = _create_project(client, {"title": "Hello"})
        url = f"/api/projects/{project_id}/translations"

        assert client.get(url).status_code == 400
        assert client.get("/api/projects/999/translations?target_language=fr").status_code == 404
        assert client.post(url, json={"key": "title", "target_language": "fr"}).status_code == 400
        assert client.post(url, json={"key": "title", "translated_text": "Salut", "target_language": "xx-bad"}).status_code == 400
        assert client.post(url, json={"key": "missing", "translated_text": "X", "target_language": "fr"}).status_code == 400
        assert client.post(
            "/api/projects/999/translations",
            json={"key": "title", "translated_text": "Salut", "target_language": "fr"},
        ).status_code == 404
        assert db.get_cached_translations(project_id, "fr") == []


class TestJobRunner:
    """Test coordinator retries in the job runner."""

    def test_exhausted_retries_mark_task_failed(self, client, monkeypatch):
        """Test an error on every attempt ends as a failed task with the error type."""
        project_id = _create_project(client, {"a": "b"})
        task_id = db.create_task(project_id, "en", "fr")
        attempts = []

        def broken_plan(self, skip_cache=False, cache_project_id=None):
            attempts.append(1)
            raise RuntimeError("store unavailable")

        monkeypatch.setattr("json_translator.translation.coordinator.TranslationCoordinator.plan", broken_plan)

        result = tasks.run_translation_job(task_id, translator=None)

        assert len(attempts) == 2
        assert result["status"] == "failed"
        assert db.get_task(task_id)["error"] == "RuntimeError: store unavailable"

    def test_settings_change_during_planning(self, client, monkeypatch):
        """Test a dispatcher reset while a job plans does not fail the job."""
        project_id = _create_project(client, {"a": "Hi", "b": "Bye"})
        task_id = db.create_task(project_id, "en", "fr")
        real_initialize_chunks = db.initialize_chunks

        def initialize_chunks_after_settings_save(*args, **kwargs):
            tasks.reset_dispatcher()
            return real_initialize_chunks(*args, **kwargs)

        monkeypatch.setattr(db, "initialize_chunks", initialize_chunks_after_settings_save)

        result = tasks.run_translation_job(task_id, translator=PrefixTranslator(), max_attempts=1)

        assert result["status"] == "completed"
        assert db.get_task(task_id)["translated_data"] == {"a": "[fr] Hi", "b": "[fr] Bye"}

    def test_retired_dispatcher_shut_down_after_job(self, client):
        """Test a pool detached while leased is closed once the job lets go."""
        with tasks.lease_dispatcher() as leased:
            tasks.reset_dispatcher()
            future = leased._executor.submit(lambda: "still open")
            assert future.result(timeout=5) == "still open"

        with pytest.raises(RuntimeError):
            leased._executor.submit(lambda: None)
        with tasks.lease_dispatcher() as fresh:
            assert fresh is not leased

    def test_token_usage_in_result(self, client):
        """Test provider token totals are reported with the job result."""
        project_id = _create_project(client, {"a": "Hi"})
        task_id = db.create_task(project_id, "en", "fr")

        class CountingTranslator(PrefixTranslator):
            def get_total_token_usage(self):
                return {"prompt_tokens": 12, "completion_tokens": 4}

        result = tasks.run_translation_job(task_id, translator=CountingTranslator())
        assert result["token_usage"] == {"prompt_tokens": 12, "completion_tokens": 4}


class TestSettings:
    """Test the settings API."""

    def test_api_keys_are_masked(self, client):
        """Test stored keys never leave the server in clear."""
        response = client.put("/api/settings/", json={"config": {"openai": {"api_key": "sk-secret-123456"}}})
        assert response.status_code == 200
        config = client.get("/api/settings/").get_json()["config"]
        assert config["openai"]["api_key"] == "****3456"

    def test_masked_key_keeps_stored_value(self, client):
        """Test sending back a masked key does not overwrite the real one."""
        from json_translator.config import load_config

        client.put("/api/settings/", json={"config": {"openai": {"api_key": "sk-secret-123456"}}})
        client.put("/api/settings/", json={"config": {"openai": {"api_key": "****3456", "timeout": 30}}})

        stored = load_config()["openai"]
        assert stored["api_key"] == "sk-secret-123456"
        assert stored["timeout"] == 30

    def test_translation_settings_merge(self, client):
        """Test partial translation updates keep the other settings."""
        from json_translator.config import get_translation_settings

        assert client.put("/api/settings/", json={"config": {"translation": {"chunk_size": 10}}}).status_code == 200
        settings = get_translation_settings()
        assert settings["chunk_size"] == 10
        assert settings["chunk_retry_delay"] == 0

    def test_invalid_settings(self, client):
        """Test invalid values are rejected."""
        assert client.put("/api/settings/", json={}).status_code == 400
        assert client.put("/api/settings/", json={"config": {"translation": {"chunk_size": 0}}}).status_code == 400
        assert client.put("/api/settings/", json={"config": {"log_mode": "loud"}}).status_code == 400
        assert client.put("/api/settings/", json={"config": {"openai": {"max_retries": 0}}}).status_code == 400
