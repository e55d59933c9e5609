"""
Translation Progress Data Class

Contains the TaskProgress dataclass and the progress/ETA read used by the
progress endpoints.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, List, Dict, Any

from json_translator.core import database as db


@dataclass
class TaskProgress:
    """Progress information for a translation task."""
    task_id: int
    status: str
    source_language: str
    target_language: str
    total_keys: int = 0
    translated_keys: int = 0
    total_chunks: int = 0
    completed_chunks: int = 0
    failed_chunks: int = 0
    percentage: int = 0
    estimated_time_remaining: Optional[float] = None  # Seconds, None when unknown
    error: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    chunks: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_percentage(translated_keys: int, total_keys: int) -> int:
    if not total_keys:
        return 0
    return round(translated_keys / total_keys * 100)


def estimate_remaining_seconds(started_at: Optional[str], translated_keys: int,
                               total_keys: int, now: Optional[datetime] = None) -> Optional[float]:
    """
    Point estimate: elapsed / translated * remaining.

    Unknown (None) until at least one key is translated.
    """
    if not started_at or translated_keys <= 0:
        return None
    now = now or datetime.now()
    elapsed = (now - datetime.fromisoformat(started_at)).total_seconds()
    remaining = max(total_keys - translated_keys, 0)
    return max(elapsed, 0.0) / translated_keys * remaining


def get_task_progress(task_id: int, now: Optional[datetime] = None) -> Optional[TaskProgress]:
    """Read a task's current progress; safe to call at any point in its life."""
    task = db.get_task(task_id)
    if not task:
        return None

    total_keys = task.get('total_keys') or 0
    translated_keys = task.get('translated_keys') or 0

    eta = None
    if task['status'] == 'processing':
        eta = estimate_remaining_seconds(task.get('started_at'), translated_keys, total_keys, now)

    chunks = [
        {
            'chunk_index': chunk['chunk_index'],
            'status': chunk['status'],
            'items_count': chunk['items_count'],
            'translated_count': chunk['translated_count'],
            'error_message': chunk.get('error_message'),
        }
        for chunk in db.get_chunks_for_task(task_id)
    ]

    return TaskProgress(
        task_id=task['id'],
        status=task['status'],
        source_language=task['source_language'],
        target_language=task['target_language'],
        total_keys=total_keys,
        translated_keys=translated_keys,
        total_chunks=task.get('total_chunks') or 0,
        completed_chunks=task.get('completed_chunks') or 0,
        failed_chunks=task.get('failed_chunks') or 0,
        percentage=calculate_percentage(translated_keys, total_keys),
        estimated_time_remaining=eta,
        error=task.get('error'),
        started_at=task.get('started_at'),
        completed_at=task.get('completed_at'),
        chunks=chunks,
    )
