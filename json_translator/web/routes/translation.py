"""Translation job API routes: start, progress, results, cache sources and cached records."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from json_translator.config import MAX_CONTEXT_LENGTH
from json_translator.core import database as db
from json_translator.logger import get_logger
import json_translator.language_codes as lc
from json_translator.ai.service import validate_ai_config, TranslationError
from json_translator.translation.progress import get_task_progress
from json_translator.translation.utils import flatten_json
from json_translator.web import tasks

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)


@translation_bp.post("/projects/<int:project_id>/translate")
def start_translation_job(project_id: int):
    """Start an asynchronous translation task for a project."""
    project = db.get_project_by_id(project_id)
    if not project:
        logger.warning("Project %s not found when starting translation job", project_id)
        return jsonify({"error": "Project not found"}), 404

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    target_language = data.get("target_language")
    selected_keys = data.get("selected_keys")
    context = data.get("context") or None
    skip_cache = bool(data.get("skip_cache", False))
    cache_project_id = data.get("cache_project_id")
    model_override = data.get("model")
    ai_provider = data.get("ai_provider") or None
    if ai_provider is not None and not isinstance(ai_provider, str):
        return jsonify({"error": "ai_provider must be a string"}), 400

    # Parse ai_provider if it's in "provider:model" format
    if ai_provider and isinstance(ai_provider, str) and ":" in ai_provider:
        provider_id, model_from_provider = ai_provider.split(":", 1)
        if model_override is None and model_from_provider:
            model_override = model_from_provider
        ai_provider = provider_id

    if not target_language or not isinstance(target_language, str):
        return jsonify({"error": "target_language is required"}), 400
    target_language = target_language.strip()
    if not lc.is_valid_language_code(target_language):
        return jsonify({"error": f"Invalid target language code: {target_language}"}), 400
    if lc.languages_match(target_language, project["source_language"], strict=True):
        return jsonify({"error": "Target language must differ from the source language"}), 400

    if selected_keys is not None:
        if not isinstance(selected_keys, list) or not all(
            isinstance(key, str) and key for key in selected_keys
        ):
            return jsonify({"error": "selected_keys must be a list of key paths"}), 400

    if context is not None:
        if not isinstance(context, str):
            return jsonify({"error": "context must be a string"}), 400
        if len(context) > MAX_CONTEXT_LENGTH:
            return jsonify({"error": f"context must be at most {MAX_CONTEXT_LENGTH} characters"}), 400

    if cache_project_id is not None:
        try:
            cache_project_id = int(cache_project_id)
        except (ValueError, TypeError):
            return jsonify({"error": "cache_project_id must be an integer"}), 400
        if not db.get_project_by_id(cache_project_id):
            return jsonify({"error": "Cache project not found"}), 404

    # Validate AI configuration
    try:
        validate_ai_config(provider_override=ai_provider)
    except TranslationError as e:
        logger.warning("AI configuration validation failed: %s", e)
        error_response = {"error": str(e), "code": e.code or "ai_config_error"}
        if e.details:
            error_response["details"] = e.details
        return jsonify(error_response), 400

    task_id = db.create_task(
        project_id,
        project["source_language"],
        target_language,
        selected_keys=selected_keys or None,
        context=context,
    )
    tasks.start_translation_job(
        task_id,
        skip_cache=skip_cache,
        cache_project_id=cache_project_id,
        model_override=model_override,
        ai_provider=ai_provider,
    )

    return jsonify({"task": db.get_task(task_id)}), 202


@translation_bp.get("/projects/<int:project_id>/tasks")
def list_tasks(project_id: int):
    """Return all tasks of a project, newest first."""
    if not db.get_project_by_id(project_id):
        return jsonify({"error": "Project not found"}), 404

    project_tasks = db.get_tasks_by_project(project_id)
    # Documents can be large; fetch them through the result endpoint
    for task in project_tasks:
        task.pop("translated_data", None)
    return jsonify({"tasks": project_tasks})


@translation_bp.get("/projects/<int:project_id>/progress")
def get_project_progress(project_id: int):
    """Progress of the latest (preferably active) task for a target language."""
    if not db.get_project_by_id(project_id):
        return jsonify({"error": "Project not found"}), 404

    target_language = request.args.get("target_language")
    if not target_language:
        return jsonify({"error": "target_language is required"}), 400

    task = db.get_latest_task(project_id, target_language)
    if not task:
        return jsonify({"progress": None})

    progress = get_task_progress(task["id"])
    return jsonify({"progress": progress.to_dict() if progress else None})


@translation_bp.get("/tasks/<int:task_id>/progress")
def get_progress(task_id: int):
    """Status, percentage, ETA and chunk breakdown of a task."""
    progress = get_task_progress(task_id)
    if not progress:
        return jsonify({"error": "Task not found"}), 404
    return jsonify({"progress": progress.to_dict()})


@translation_bp.get("/tasks/<int:task_id>/result")
def get_result(task_id: int):
    """Translated document of a completed task."""
    task = db.get_task(task_id)
    if not task:
        return jsonify({"error": "Task not found"}), 404

    if task["status"] != "completed":
        return jsonify({
            "error": f"Task is {task['status']}",
            "status": task["status"],
            "task_error": task.get("error"),
        }), 409

    return jsonify({
        "task_id": task_id,
        "source_language": task["source_language"],
        "target_language": task["target_language"],
        "data": task["translated_data"],
    })


@translation_bp.get("/translations/cache-sources")
def get_cache_sources():
    """Project ids holding successful translations for a language pair."""
    source_language = request.args.get("source_language")
    target_language = request.args.get("target_language")
    if not source_language or not target_language:
        return jsonify({"error": "source_language and target_language are required"}), 400

    project_ids = db.get_cache_source_projects(source_language, target_language)
    return jsonify({"project_ids": project_ids})


@translation_bp.get("/projects/<int:project_id>/translations")
def list_translations(project_id: int):
    """Successful cached translations of a project for a target language."""
    if not db.get_project_by_id(project_id):
        return jsonify({"error": "Project not found"}), 404

    target_language = request.args.get("target_language")
    if not target_language:
        return jsonify({"error": "target_language is required"}), 400

    translations = db.get_cached_translations(project_id, target_language)
    return jsonify({"translations": translations})


@translation_bp.post("/projects/<int:project_id>/translations")
def save_translation(project_id: int):
    """
    Save a manually edited translation of one key.

    The record is upserted like a job result, so later jobs reuse it from
    the cache while the key's source text stays the same. source_text
    defaults to the key's current text in the project document.
    """
    project = db.get_project_by_id(project_id)
    if not project:
        return jsonify({"error": "Project not found"}), 404

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    key = data.get("key")
    translated_text = data.get("translated_text")
    target_language = data.get("target_language")
    source_text = data.get("source_text")

    for field, value in (("key", key), ("translated_text", translated_text), ("target_language", target_language)):
        if not isinstance(value, str) or not value:
            return jsonify({"error": f"{field} is required"}), 400

    target_language = target_language.strip()
    if not lc.is_valid_language_code(target_language):
        return jsonify({"error": f"Invalid target language code: {target_language}"}), 400

    if source_text is None:
        source_text = dict(flatten_json(project["original_data"])).get(key)
        if source_text is None:
            return jsonify({"error": f"Key not found in project document: {key}"}), 400
    elif not isinstance(source_text, str) or not source_text:
        return jsonify({"error": "source_text must be a non-empty string"}), 400

    db.save_translation(
        project_id,
        key,
        source_text,
        translated_text,
        project["source_language"],
        target_language,
    )
    saved = [
        record
        for record in db.get_translations_by_keys(project_id, target_language, [key])
        if record["source_language"] == project["source_language"]
    ]
    logger.info("Saved manual translation of '%s' (%s) for project %s", key, target_language, project_id)
    return jsonify({"translation": saved[0] if saved else None})
