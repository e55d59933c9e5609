"""
Database CRUD Operations Module

This module handles all database CRUD operations for:
- Projects
- Translation Tasks (job progress counters)
- Translation Chunks
- Translations (cache records)
- App Config

Progress counters shared by concurrent chunk workers are only ever changed
with `SET x = x + ?` statements, never read-modify-write.

For schema management, see core/schema.py
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable

DB_FILE = Path(__file__).parent.parent.parent / "translations.db"

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT = 30.0

TERMINAL_STATUSES = ("completed", "failed")

# Keep IN (...) lists under SQLite's host parameter limit
_KEY_BATCH_SIZE = 500


def get_connection():
    """Get a database connection."""
    return sqlite3.connect(DB_FILE, timeout=BUSY_TIMEOUT)


def _now() -> str:
    return datetime.now().isoformat()


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


# ============================================================
# Project CRUD Operations
# ============================================================

def create_project(name: str, source_language: str, original_data: Dict[str, Any],
                   description: str = None) -> int:
    """Create a new project holding the source document."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO projects (name, description, source_language, original_data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (name, description, source_language,
              json.dumps(original_data, ensure_ascii=False), _now(), _now()))
        conn.commit()
        return cursor.lastrowid


def _project_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    project = dict(row)
    project['original_data'] = _loads(project.get('original_data')) or {}
    return project


def get_all_projects() -> List[Dict[str, Any]]:
    """Get all projects, newest first (without their documents)."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, name, description, source_language, created_at, updated_at
            FROM projects
            ORDER BY created_at DESC, id DESC
        """)
        return [dict(row) for row in cursor.fetchall()]


def get_project_by_id(project_id: int) -> Optional[Dict[str, Any]]:
    """Get a project by ID."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        row = cursor.fetchone()
        return _project_from_row(row) if row else None


def delete_project(project_id: int) -> bool:
    """Delete a project and all its associated data."""
    with get_connection() as conn:
        cursor = conn.cursor()
        # Children first (foreign key order)
        cursor.execute("""
            DELETE FROM translation_chunks
            WHERE task_id IN (
                SELECT id FROM translation_tasks WHERE project_id = ?
            )
        """, (project_id,))
        cursor.execute("DELETE FROM translations WHERE project_id = ?", (project_id,))
        cursor.execute("DELETE FROM translation_tasks WHERE project_id = ?", (project_id,))
        cursor.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        return deleted


# ============================================================
# Translation Task CRUD Operations
# ============================================================

def create_task(project_id: int, source_language: str, target_language: str,
                selected_keys: Optional[List[str]] = None, context: str = None) -> int:
    """Create a task in pending status with zeroed counters."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO translation_tasks
            (project_id, source_language, target_language, selected_keys, context,
             status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
        """, (project_id, source_language, target_language,
              json.dumps(selected_keys) if selected_keys else None,
              context, _now(), _now()))
        conn.commit()
        return cursor.lastrowid


def _task_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    task = dict(row)
    task['selected_keys'] = _loads(task.get('selected_keys')) or []
    task['translated_data'] = _loads(task.get('translated_data'))
    return task


def get_task(task_id: int) -> Optional[Dict[str, Any]]:
    """Get a task by ID."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM translation_tasks WHERE id = ?", (task_id,))
        row = cursor.fetchone()
        return _task_from_row(row) if row else None


def get_tasks_by_project(project_id: int) -> List[Dict[str, Any]]:
    """Get all tasks of a project, newest first."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM translation_tasks
            WHERE project_id = ?
            ORDER BY created_at DESC, id DESC
        """, (project_id,))
        return [_task_from_row(row) for row in cursor.fetchall()]


def get_latest_task(project_id: int, target_language: str) -> Optional[Dict[str, Any]]:
    """Latest active (pending/processing) task for the language pair, else the most recent one."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM translation_tasks
            WHERE project_id = ? AND target_language = ?
            ORDER BY CASE WHEN status IN ('pending', 'processing') THEN 0 ELSE 1 END,
                     created_at DESC, id DESC
            LIMIT 1
        """, (project_id, target_language))
        row = cursor.fetchone()
        return _task_from_row(row) if row else None


def update_task(task_id: int, status: str = None, error: str = None,
                translated_data: Dict[str, Any] = None, started_at: str = None,
                completed_at: str = None) -> bool:
    """
    Update a task that has not reached a terminal status.

    Completed and failed tasks are immutable: the update is skipped and
    False is returned.
    """
    updates = ["updated_at = ?"]
    params: List[Any] = [_now()]

    if status is not None:
        updates.append("status = ?")
        params.append(status)
    if error is not None:
        updates.append("error = ?")
        params.append(error)
    if translated_data is not None:
        updates.append("translated_data = ?")
        params.append(json.dumps(translated_data, ensure_ascii=False))
    if started_at is not None:
        updates.append("started_at = ?")
        params.append(started_at)
    if completed_at is not None:
        updates.append("completed_at = ?")
        params.append(completed_at)

    params.append(task_id)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"""
            UPDATE translation_tasks
            SET {', '.join(updates)}
            WHERE id = ? AND status NOT IN ('completed', 'failed')
        """, params)
        conn.commit()
        return cursor.rowcount > 0


def initialize_task_progress(task_id: int, total_keys: int, total_chunks: int):
    """Set real totals and reset the shared counters (planning is re-runnable)."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE translation_tasks
            SET total_keys = ?, total_chunks = ?,
                translated_keys = 0, completed_chunks = 0, failed_chunks = 0,
                updated_at = ?
            WHERE id = ?
        """, (total_keys, total_chunks, _now(), task_id))
        conn.commit()


def increment_translated_keys(task_id: int, increment: int = 1):
    """Atomically add to the translated key count."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE translation_tasks
            SET translated_keys = translated_keys + ?, updated_at = ?
            WHERE id = ?
        """, (increment, _now(), task_id))
        conn.commit()


def _read_chunk_counters(cursor: sqlite3.Cursor, task_id: int) -> Optional[Dict[str, int]]:
    cursor.execute("""
        SELECT total_chunks, completed_chunks, failed_chunks
        FROM translation_tasks
        WHERE id = ?
    """, (task_id,))
    row = cursor.fetchone()
    if not row:
        return None
    return {
        'total_chunks': row[0] or 0,
        'completed_chunks': row[1] or 0,
        'failed_chunks': row[2] or 0,
    }


def _increment_chunk_counter(task_id: int, column: str) -> Optional[Dict[str, int]]:
    """
    Atomically bump a chunk counter and return the counters as they stand
    right after this increment.

    The read happens inside the write transaction, so no other writer's
    increment can land between the two statements.
    """
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"""
            UPDATE translation_tasks
            SET {column} = {column} + 1, updated_at = ?
            WHERE id = ?
        """, (_now(), task_id))
        snapshot = _read_chunk_counters(cursor, task_id)
        conn.commit()
    return snapshot


def complete_chunk(task_id: int, chunk_index: int, items_count: int,
                   translated_count: int) -> Optional[Dict[str, int]]:
    """
    Mark a chunk completed and add it to the task counters in one transaction.

    The chunk row, translated_keys and completed_chunks either all change or
    none do, so retrying a chunk after a failed commit never counts its keys
    twice. Returns the post-increment chunk counters.
    """
    now = _now()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE translation_chunks
            SET status = 'completed', items_count = ?, translated_count = ?,
                error_message = NULL, completed_at = ?, updated_at = ?
            WHERE task_id = ? AND chunk_index = ?
        """, (items_count, translated_count, now, now, task_id, chunk_index))
        cursor.execute("""
            UPDATE translation_tasks
            SET translated_keys = translated_keys + ?,
                completed_chunks = completed_chunks + 1,
                updated_at = ?
            WHERE id = ?
        """, (translated_count, now, task_id))
        snapshot = _read_chunk_counters(cursor, task_id)
        conn.commit()
    return snapshot


def increment_failed_chunks(task_id: int) -> Optional[Dict[str, int]]:
    """Increment failed chunks, returning the post-increment counters."""
    return _increment_chunk_counter(task_id, "failed_chunks")


# ============================================================
# Translation Chunk CRUD Operations
# ============================================================

def initialize_chunks(task_id: int, chunk_sizes: List[int]):
    """
    Create one pending chunk row per planned chunk.

    Rows are upserted on (task_id, chunk_index), so planning the same task
    again resets the rows instead of duplicating them.
    """
    now = _now()
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.executemany("""
            INSERT INTO translation_chunks
            (task_id, chunk_index, status, items_count, translated_count, created_at, updated_at)
            VALUES (?, ?, 'pending', ?, 0, ?, ?)
            ON CONFLICT(task_id, chunk_index) DO UPDATE SET
                status = 'pending',
                items_count = excluded.items_count,
                translated_count = 0,
                error_message = NULL,
                started_at = NULL,
                completed_at = NULL,
                updated_at = excluded.updated_at
        """, [(task_id, index, size, now, now) for index, size in enumerate(chunk_sizes)])
        # Drop rows beyond the new plan
        cursor.execute("""
            DELETE FROM translation_chunks
            WHERE task_id = ? AND chunk_index >= ?
        """, (task_id, len(chunk_sizes)))
        conn.commit()


def update_chunk_status(task_id: int, chunk_index: int, status: str,
                        items_count: int = None, translated_count: int = None,
                        error_message: str = None):
    """Update one chunk's status, stamping start/end times."""
    updates = ["status = ?", "updated_at = ?"]
    params: List[Any] = [status, _now()]

    if items_count is not None:
        updates.append("items_count = ?")
        params.append(items_count)
    if translated_count is not None:
        updates.append("translated_count = ?")
        params.append(translated_count)
    if error_message:
        updates.append("error_message = ?")
        params.append(error_message)

    if status == "processing":
        # A new attempt starts without the previous attempt's error
        if not error_message:
            updates.append("error_message = NULL")
        updates.append("started_at = ?")
        params.append(_now())
    elif status in TERMINAL_STATUSES:
        updates.append("completed_at = ?")
        params.append(_now())

    params.extend([task_id, chunk_index])
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(f"""
            UPDATE translation_chunks
            SET {', '.join(updates)}
            WHERE task_id = ? AND chunk_index = ?
        """, params)
        conn.commit()


def get_chunks_for_task(task_id: int) -> List[Dict[str, Any]]:
    """Get all chunks of a task ordered by index."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM translation_chunks
            WHERE task_id = ?
            ORDER BY chunk_index
        """, (task_id,))
        return [dict(row) for row in cursor.fetchall()]


# ============================================================
# Translation CRUD Operations
# ============================================================

_UPSERT_TRANSLATION = """
    INSERT INTO translations
    (project_id, task_id, chunk_index, key, source_text, translated_text,
     source_language, target_language, failed, translated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(project_id, key, source_language, target_language) DO UPDATE SET
        task_id = excluded.task_id,
        chunk_index = excluded.chunk_index,
        source_text = excluded.source_text,
        translated_text = excluded.translated_text,
        failed = excluded.failed,
        translated_at = excluded.translated_at
"""


def save_translations(records: Iterable[Dict[str, Any]]) -> int:
    """
    Upsert translation records in one transaction.

    Each record needs project_id, key, source_text, translated_text,
    source_language and target_language; task_id, chunk_index and failed
    are optional. Last write wins on the unique key.
    """
    now = _now()
    rows = [
        (
            record['project_id'],
            record.get('task_id'),
            record.get('chunk_index'),
            record['key'],
            record['source_text'],
            record['translated_text'],
            record['source_language'],
            record['target_language'],
            1 if record.get('failed') else 0,
            now,
        )
        for record in records
    ]
    if not rows:
        return 0
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.executemany(_UPSERT_TRANSLATION, rows)
        conn.commit()
    return len(rows)


def save_translation(project_id: int, key: str, source_text: str, translated_text: str,
                     source_language: str, target_language: str, task_id: int = None,
                     chunk_index: int = None, failed: bool = False):
    """Create or update a single translation."""
    save_translations([{
        'project_id': project_id,
        'task_id': task_id,
        'chunk_index': chunk_index,
        'key': key,
        'source_text': source_text,
        'translated_text': translated_text,
        'source_language': source_language,
        'target_language': target_language,
        'failed': failed,
    }])


def _translation_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    translation = dict(row)
    translation['failed'] = bool(translation.get('failed'))
    return translation


def get_translations_by_task(task_id: int) -> List[Dict[str, Any]]:
    """Get every translation record currently attributed to a task."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM translations
            WHERE task_id = ?
            ORDER BY id
        """, (task_id,))
        return [_translation_from_row(row) for row in cursor.fetchall()]


def get_cached_translations(project_id: int, target_language: str) -> List[Dict[str, Any]]:
    """Get a project's successful translations for a target language, by key."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM translations
            WHERE project_id = ? AND target_language = ? AND failed = 0
            ORDER BY key
        """, (project_id, target_language))
        return [_translation_from_row(row) for row in cursor.fetchall()]


def get_translations_by_keys(project_id: int, target_language: str,
                             keys: List[str]) -> List[Dict[str, Any]]:
    """Get cached translations of a project for the given key paths."""
    if not keys:
        return []

    results: List[Dict[str, Any]] = []
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()
        for start in range(0, len(keys), _KEY_BATCH_SIZE):
            batch = keys[start:start + _KEY_BATCH_SIZE]
            placeholders = ", ".join("?" for _ in batch)
            cursor.execute(f"""
                SELECT * FROM translations
                WHERE project_id = ? AND target_language = ?
                  AND key IN ({placeholders})
            """, (project_id, target_language, *batch))
            results.extend(_translation_from_row(row) for row in cursor.fetchall())
    return results


def get_cache_source_projects(source_language: str, target_language: str) -> List[int]:
    """Project IDs holding successful translations for a language pair."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT project_id FROM translations
            WHERE source_language = ? AND target_language = ? AND failed = 0
            GROUP BY project_id
            ORDER BY project_id
        """, (source_language, target_language))
        return [row[0] for row in cursor.fetchall()]


def get_translation_stats(project_id: int, target_language: str) -> Dict[str, int]:
    """Count total/successful/failed translation records for a project."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT COUNT(*),
                   COALESCE(SUM(CASE WHEN failed = 0 THEN 1 ELSE 0 END), 0),
                   COALESCE(SUM(CASE WHEN failed = 1 THEN 1 ELSE 0 END), 0)
            FROM translations
            WHERE project_id = ? AND target_language = ?
        """, (project_id, target_language))
        total, successful, failed = cursor.fetchone()
        return {'total': total, 'successful': successful, 'failed': failed}


# ============================================================
# App Config CRUD Operations
# ============================================================

def get_app_config(key: str) -> Optional[str]:
    """Get a configuration value by key."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(key: str, value: str):
    """Set a configuration value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS app_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("""
            INSERT OR REPLACE INTO app_config (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, _now()))
        conn.commit()
