"""
Translation Job Coordinator

Drives one translation task end to end:

    planning -> dispatching -> awaiting_completion -> finalizing -> completed | failed

Planning flattens the project document (or only the selected keys), reuses
cached translations and splits the rest into chunks. Chunks are handed to
the dispatcher without waiting on any of them; the coordinator then blocks
on the task's completion signal, re-reads the real counters and rebuilds
the translated document from the stored records.

A plan with no chunks (everything came from the cache) goes straight from
planning to finalizing.
"""

from datetime import datetime
from typing import List, Dict, Any, Optional

from json_translator.config import get_translation_settings
from json_translator.core import database as db
from json_translator.logger import get_logger
from json_translator.translation.cache import substitute_cached
from json_translator.translation.signals import CompletionSignals, completion_signals
from json_translator.translation.utils import (
    Leaf,
    build_json_from_pairs,
    chunk_entries,
    flatten_json,
    is_json_object,
    merge_into_document,
    select_leaves,
)
from json_translator.translation.worker import ChunkDispatcher, ChunkPayload, format_failed_chunks_error

logger = get_logger(__name__)


def _format_timeout(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


class TranslationCoordinator:
    """Coordinates planning, fan-out and fan-in of one translation task."""

    def __init__(
        self,
        task_id: int,
        translator,
        dispatcher: ChunkDispatcher,
        signals: CompletionSignals = completion_signals,
        settings: Optional[Dict[str, Any]] = None,
    ):
        self.task_id = task_id
        self.translator = translator
        self.dispatcher = dispatcher
        self.signals = signals
        self.settings = settings if settings is not None else get_translation_settings()

        self.state = "pending"
        self.task: Optional[Dict[str, Any]] = None
        self.document: Dict[str, Any] = {}
        self.leaves: List[Leaf] = []
        self.chunks: List[List[Leaf]] = []
        self.reused_keys = 0

    def _set_state(self, state: str):
        logger.debug(f"Task {self.task_id}: {self.state} -> {state}")
        self.state = state

    def run(self, skip_cache: bool = False, cache_project_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Run the task to a terminal status.

        Errors raised while planning or dispatching propagate to the caller,
        which may retry; run() always starts over from initialize().
        The task's signal channel is closed whichever way run() ends.
        """
        self.initialize()
        try:
            self.plan(skip_cache=skip_cache, cache_project_id=cache_project_id)

            if not self.chunks:
                logger.info(f"Task {self.task_id}: nothing left to translate, finalizing")
                return self.finalize()

            self.dispatch()

            timeout = float(self.settings.get('completion_timeout', 1800))
            if not self.await_completion(timeout):
                return self.fail(f"Translation job timed out after {_format_timeout(timeout)}")

            return self.finalize()
        finally:
            self.signals.close(self.task_id)

    def initialize(self):
        """Mark the task processing and clear leftovers from an earlier attempt."""
        self.task = db.get_task(self.task_id)
        if not self.task:
            raise ValueError(f"Task {self.task_id} not found")
        if self.task['status'] in db.TERMINAL_STATUSES:
            raise ValueError(f"Task {self.task_id} already {self.task['status']}")

        self.signals.reset(self.task_id)
        db.update_task(self.task_id, status="processing", started_at=datetime.now().isoformat())
        self.reused_keys = 0
        self._set_state("planning")
        logger.info(
            f"Task {self.task_id}: translating project {self.task['project_id']} "
            f"from {self.task['source_language']} to {self.task['target_language']}"
        )

    def plan(self, skip_cache: bool = False, cache_project_id: Optional[int] = None):
        """Extract leaves, reuse cache hits, chunk the remainder and persist the plan."""
        task = self.task
        project = db.get_project_by_id(task['project_id'])
        if not project:
            raise ValueError(f"Project {task['project_id']} not found")

        document = project.get('original_data')
        if not is_json_object(document):
            raise ValueError(f"Project {project['id']} document is not a JSON object")
        self.document = document

        selected_keys = task.get('selected_keys') or []
        if selected_keys:
            self.leaves = select_leaves(document, selected_keys)
            logger.info(f"Task {self.task_id}: {len(self.leaves)} of {len(selected_keys)} selected keys found")
        else:
            self.leaves = flatten_json(document)

        if skip_cache:
            to_translate = list(self.leaves)
        else:
            to_translate, self.reused_keys = substitute_cached(
                task['project_id'],
                self.task_id,
                self.leaves,
                task['source_language'],
                task['target_language'],
                cache_project_id=cache_project_id,
            )

        chunk_size = int(self.settings.get('chunk_size', 25))
        self.chunks = chunk_entries(to_translate, chunk_size)

        db.initialize_task_progress(self.task_id, len(self.leaves), len(self.chunks))
        if self.reused_keys:
            db.increment_translated_keys(self.task_id, self.reused_keys)
        db.initialize_chunks(self.task_id, [len(chunk) for chunk in self.chunks])

        logger.info(
            f"Task {self.task_id}: {len(self.leaves)} keys, {self.reused_keys} from cache, "
            f"{len(to_translate)} in {len(self.chunks)} chunks of up to {chunk_size}"
        )

    def dispatch(self):
        """Hand every chunk to the dispatcher; does not wait for any of them."""
        self._set_state("dispatching")
        task = self.task
        total_chunks = len(self.chunks)
        for index, items in enumerate(self.chunks):
            self.dispatcher.dispatch(
                ChunkPayload(
                    task_id=self.task_id,
                    project_id=task['project_id'],
                    chunk_index=index,
                    items=items,
                    source_language=task['source_language'],
                    target_language=task['target_language'],
                    total_chunks=total_chunks,
                    context=task.get('context'),
                ),
                self.translator,
            )
        logger.info(f"Task {self.task_id}: dispatched {total_chunks} chunks")

    def await_completion(self, timeout: float) -> bool:
        """Block on the completion signal; False when the deadline passes first."""
        self._set_state("awaiting_completion")
        signal = self.signals.wait_for(self.task_id, timeout)
        if signal is None:
            logger.error(f"Task {self.task_id}: no completion signal within {timeout:g}s")
            return False
        logger.info(f"Task {self.task_id}: completion signal received (success={signal['success']})")
        return True

    def finalize(self) -> Dict[str, Any]:
        """Re-read the counters and either fail the task or store the rebuilt document."""
        self._set_state("finalizing")
        task = db.get_task(self.task_id)
        failed_chunks = task.get('failed_chunks') or 0
        if failed_chunks:
            return self.fail(format_failed_chunks_error(failed_chunks))

        translated_data = self.rebuild()
        completed = db.update_task(
            self.task_id,
            status="completed",
            translated_data=translated_data,
            completed_at=datetime.now().isoformat(),
        )
        if completed:
            self._set_state("completed")
            logger.info(f"Task {self.task_id}: completed")
        else:
            logger.warning(f"Task {self.task_id}: already finalized, result not overwritten")
        return self.result()

    def rebuild(self) -> Dict[str, Any]:
        """
        Translated document in planned leaf order.

        In selected keys mode the translations are merged into a copy of
        the full source document.
        """
        translated = {
            record['key']: record['translated_text']
            for record in db.get_translations_by_task(self.task_id)
        }

        pairs = []
        for path, source_text in self.leaves:
            if path not in translated:
                logger.warning(f"Task {self.task_id}: no record for '{path}', keeping source text")
            pairs.append((path, translated.get(path, source_text)))

        if self.task.get('selected_keys'):
            return merge_into_document(self.document, pairs)
        return build_json_from_pairs(pairs)

    def fail(self, error: str) -> Dict[str, Any]:
        if db.update_task(self.task_id, status="failed", error=error,
                          completed_at=datetime.now().isoformat()):
            self._set_state("failed")
            logger.error(f"Task {self.task_id}: failed - {error}")
        return self.result()

    def result(self) -> Dict[str, Any]:
        task = db.get_task(self.task_id)
        return {
            'task_id': self.task_id,
            'status': task['status'],
            'error': task.get('error'),
            'total_keys': task.get('total_keys') or 0,
            'translated_keys': task.get('translated_keys') or 0,
            'total_chunks': task.get('total_chunks') or 0,
            'completed_chunks': task.get('completed_chunks') or 0,
            'failed_chunks': task.get('failed_chunks') or 0,
            'reused_keys': self.reused_keys,
        }
