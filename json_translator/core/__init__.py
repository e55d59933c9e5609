"""
Core module - Database utilities

This module provides:
- database: CRUD operations and atomic progress counters for all entities
- schema: Database initialization and indexes
"""

from json_translator.core.database import (
    DB_FILE,
    get_connection,
    # Project operations
    create_project,
    get_all_projects,
    get_project_by_id,
    delete_project,
    # Task operations
    create_task,
    get_task,
    get_tasks_by_project,
    get_latest_task,
    update_task,
    initialize_task_progress,
    increment_translated_keys,
    complete_chunk,
    increment_failed_chunks,
    # Chunk operations
    initialize_chunks,
    update_chunk_status,
    get_chunks_for_task,
    # Translation operations
    save_translation,
    save_translations,
    get_translations_by_task,
    get_cached_translations,
    get_translations_by_keys,
    get_cache_source_projects,
    get_translation_stats,
    # App config operations
    get_app_config,
    set_app_config,
)

from json_translator.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
    ensure_database_indexes,
)
