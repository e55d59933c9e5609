"""Project management API routes - CRUD and statistics."""

from __future__ import annotations

import json
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from json_translator.core import database as db
from json_translator.logger import get_logger
import json_translator.language_codes as lc
from json_translator.translation.utils import flatten_json

projects_bp = Blueprint("projects", __name__)
logger = get_logger(__name__)


@projects_bp.get("/")
def list_projects():
    """Return all projects stored in the database."""
    projects = db.get_all_projects()
    logger.debug("Projects listed: %s", len(projects))
    return jsonify({"projects": projects})


@projects_bp.get("/<int:project_id>")
def get_project(project_id: int):
    """Return a project with its source document and key count."""
    project = db.get_project_by_id(project_id)
    if not project:
        logger.warning("Project %s not found", project_id)
        return jsonify({"error": "Project not found"}), 404

    return jsonify({
        "project": project,
        "key_count": len(flatten_json(project["original_data"])),
    })


@projects_bp.post("/")
def create_project():
    """Create a project from a source JSON document."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}

    name = data.get("name")
    source_language = data.get("source_language")
    document = data.get("data")
    description = data.get("description")

    missing_fields = [
        field
        for field, value in [
            ("name", name),
            ("source_language", source_language),
            ("data", document),
        ]
        if value is None or value == ""
    ]
    if missing_fields:
        logger.warning("Missing required project fields: %s", missing_fields)
        return jsonify({"error": "Missing required fields", "missing_fields": missing_fields}), 400

    if not isinstance(source_language, str) or not lc.is_valid_language_code(source_language):
        return jsonify({"error": f"Invalid source language code: {source_language}"}), 400

    # Documents may also arrive as a JSON string (file upload contents)
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as err:
            return jsonify({"error": f"Invalid JSON document: {err}"}), 400

    if not isinstance(document, dict):
        return jsonify({"error": "Document must be a JSON object"}), 400

    try:
        project_id = db.create_project(name, source_language, document, description=description)
        project = db.get_project_by_id(project_id)
    except Exception:
        logger.exception("Unexpected error creating project")
        return jsonify({"error": "Failed to create project"}), 500

    logger.info("Created project %s (%s, %s)", project_id, name, source_language)
    return jsonify({"project": project, "key_count": len(flatten_json(document))}), 201


@projects_bp.delete("/<int:project_id>")
def delete_project(project_id: int):
    """Delete a project with its tasks, chunks and translations."""
    project = db.get_project_by_id(project_id)
    if not project:
        logger.warning("Attempted to delete missing project %s", project_id)
        return jsonify({"error": "Project not found"}), 404

    db.delete_project(project_id)
    logger.info("Deleted project %s", project_id)
    return jsonify({"status": "deleted"})


@projects_bp.get("/<int:project_id>/stats")
def get_project_stats(project_id: int):
    """Translation record counts for one target language."""
    project = db.get_project_by_id(project_id)
    if not project:
        return jsonify({"error": "Project not found"}), 404

    target_language = request.args.get("target_language")
    if not target_language:
        return jsonify({"error": "target_language is required"}), 400

    stats = db.get_translation_stats(project_id, target_language)
    return jsonify({
        "project_id": project_id,
        "target_language": target_language,
        "total_keys": len(flatten_json(project["original_data"])),
        **stats,
    })
