"""
Translation cache substitution.

Splits a job's leaves into those already translated by an earlier job and
those that still need a translator call.
"""

from typing import List, Dict, Any, Tuple, Optional

from json_translator.core import database as db
from json_translator.logger import get_logger
from json_translator.translation.utils import Leaf

logger = get_logger(__name__)


def is_reusable(hit: Optional[Dict[str, Any]], source_text: str,
                source_language: str, target_language: str) -> bool:
    """A cached record is reusable only on an exact source text and language pair match."""
    if not hit:
        return False
    if hit.get('failed'):
        return False
    return (
        hit.get('source_text') == source_text
        and hit.get('source_language') == source_language
        and hit.get('target_language') == target_language
    )


def substitute_cached(
    project_id: int,
    task_id: int,
    leaves: List[Leaf],
    source_language: str,
    target_language: str,
    cache_project_id: Optional[int] = None,
) -> Tuple[List[Leaf], int]:
    """
    Reuse cached translations for the given leaves.

    Accepted hits are saved as records of the current task so they are part
    of the final rebuild. The caller adds the reused count to the task's
    translated keys.

    Args:
        project_id: Project the job belongs to (records are written here)
        task_id: Current task
        leaves: (path, source text) pairs of the job
        cache_project_id: Project whose records are searched; defaults to project_id

    Returns:
        Tuple of (leaves still to translate, reused count)
    """
    if not leaves:
        return [], 0

    scope_id = cache_project_id if cache_project_id is not None else project_id
    hits = db.get_translations_by_keys(scope_id, target_language, [path for path, _ in leaves])

    # Several rows can share a path when the cached project used other source languages
    hits_by_path: Dict[str, List[Dict[str, Any]]] = {}
    for hit in hits:
        hits_by_path.setdefault(hit['key'], []).append(hit)

    to_translate: List[Leaf] = []
    reused_records: List[Dict[str, Any]] = []

    for path, source_text in leaves:
        accepted = next(
            (hit for hit in hits_by_path.get(path, [])
             if is_reusable(hit, source_text, source_language, target_language)),
            None,
        )
        if accepted is None:
            to_translate.append((path, source_text))
            continue
        reused_records.append({
            'project_id': project_id,
            'task_id': task_id,
            'chunk_index': None,
            'key': path,
            'source_text': source_text,
            'translated_text': accepted['translated_text'],
            'source_language': source_language,
            'target_language': target_language,
            'failed': False,
        })

    db.save_translations(reused_records)

    logger.info(
        f"Cache check for task {task_id} (scope: project {scope_id}): "
        f"{len(reused_records)} reused, {len(to_translate)} to translate"
    )
    return to_translate, len(reused_records)
