"""
Database Schema Management Module

This module handles database initialization and the unique indexes the
upserts in core/database.py rely on.
For CRUD operations, see core/database.py
"""

import sqlite3

# Import database module to use DB_FILE and get_connection dynamically
# This ensures monkeypatching in tests works correctly
import json_translator.core.database as db

DB_VERSION = 1  # Increment when schema changes


def get_connection():
    """Get a database connection using the database module's DB_FILE."""
    return db.get_connection()


def get_db_version() -> int:
    """Get current database version."""
    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT version FROM db_version LIMIT 1")
            row = cursor.fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(version: int):
    """Set database version."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        cursor.execute("DELETE FROM db_version")
        cursor.execute("INSERT INTO db_version (version) VALUES (?)", (version,))
        conn.commit()


def initialize_database():
    """Initializes the database and creates the tables."""
    from json_translator.logger import get_logger
    logger = get_logger(__name__)

    if db.DB_FILE.exists() and get_db_version() == DB_VERSION:
        try:
            ensure_database_indexes()
        except Exception as e:
            logger.warning(f"Failed to verify database indexes: {e}")
        return

    with get_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            source_language TEXT NOT NULL,
            original_data TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS translation_tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            source_language TEXT NOT NULL,
            target_language TEXT NOT NULL,
            selected_keys TEXT,
            context TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            translated_data TEXT,
            error TEXT,
            total_keys INTEGER NOT NULL DEFAULT 0,
            translated_keys INTEGER NOT NULL DEFAULT 0,
            total_chunks INTEGER NOT NULL DEFAULT 0,
            completed_chunks INTEGER NOT NULL DEFAULT 0,
            failed_chunks INTEGER NOT NULL DEFAULT 0,
            started_at TIMESTAMP,
            completed_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (project_id) REFERENCES projects (id)
        )
        """)

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS translation_chunks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL,
            chunk_index INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            items_count INTEGER NOT NULL DEFAULT 0,
            translated_count INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            started_at TIMESTAMP,
            completed_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (task_id) REFERENCES translation_tasks (id) ON DELETE CASCADE
        )
        """)

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS translations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            task_id INTEGER,
            chunk_index INTEGER,
            key TEXT NOT NULL,
            source_text TEXT NOT NULL,
            translated_text TEXT NOT NULL,
            source_language TEXT NOT NULL,
            target_language TEXT NOT NULL,
            failed INTEGER NOT NULL DEFAULT 0,
            translated_at TIMESTAMP,
            FOREIGN KEY (project_id) REFERENCES projects (id),
            FOREIGN KEY (task_id) REFERENCES translation_tasks (id)
        )
        """)

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)

        conn.commit()

    ensure_database_indexes()
    set_db_version(DB_VERSION)
    logger.info(f"Database initialized at {db.DB_FILE} (version {DB_VERSION})")


# ============================================================
# Database Indexes
# ============================================================

def ensure_database_indexes():
    """
    Ensure the unique keys and lookup indexes exist.
    The two unique indexes back the upserts in core/database.py.
    """
    from json_translator.logger import get_logger
    logger = get_logger(__name__)

    try:
        with get_connection() as conn:
            cursor = conn.cursor()

            # One chunk row per (task, index); replanning upserts instead of duplicating
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_chunks_task_index
                ON translation_chunks(task_id, chunk_index)
            """)

            # One live translation per (scope, key, language pair)
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_translations_unique
                ON translations(project_id, key, source_language, target_language)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_translations_task_id
                ON translations(task_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_translations_project_target
                ON translations(project_id, target_language)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_project_target
                ON translation_tasks(project_id, target_language)
            """)

            conn.commit()
            logger.debug("Database indexes created/verified successfully")

    except Exception as e:
        logger.error(f"Failed to ensure database indexes: {e}")
        raise
