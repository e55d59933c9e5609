"""
Chunk Worker

Translates exactly one chunk of a task: calls the translator, persists the
records, bumps the task's shared counters and, when it is the last chunk in,
sends the task's completion signal.

Chunk failures never propagate to the coordinator. They end up as state:
the chunk row, the failed chunk counter and fallback records that keep the
source text.
"""

import time
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from json_translator.config import CHUNK_MAX_ATTEMPTS, MAX_CONCURRENT_CHUNKS
from json_translator.core import database as db
from json_translator.logger import get_logger
from json_translator.translation.signals import CompletionSignals, completion_signals
from json_translator.translation.utils import Leaf

logger = get_logger(__name__)


@dataclass
class ChunkPayload:
    """Everything a worker needs to translate one chunk."""
    task_id: int
    project_id: int
    chunk_index: int
    items: List[Leaf]
    source_language: str
    target_language: str
    total_chunks: int
    context: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def format_failed_chunks_error(failed_chunks: int) -> str:
    noun = "chunk" if failed_chunks == 1 else "chunks"
    return f"{failed_chunks} {noun} failed to translate"


def _record(payload: ChunkPayload, path: str, source_text: str,
            translated_text: str, failed: bool) -> Dict[str, Any]:
    return {
        'project_id': payload.project_id,
        'task_id': payload.task_id,
        'chunk_index': payload.chunk_index,
        'key': path,
        'source_text': source_text,
        'translated_text': translated_text,
        'source_language': payload.source_language,
        'target_language': payload.target_language,
        'failed': failed,
    }


def _save_fallback_records(payload: ChunkPayload, items: List[Leaf]):
    """Keep the source text for untranslated leaves so the document stays complete."""
    db.save_translations(
        _record(payload, path, source_text, source_text, failed=True)
        for path, source_text in items
    )


def translate_chunk(payload: ChunkPayload, translator) -> Optional[Dict[str, int]]:
    """
    Run one attempt at a chunk.

    Returns:
        Task chunk counters right after this chunk's completed increment

    Raises:
        Whatever the translator or the store raised, after the chunk is
        marked failed and fallback records are written.
    """
    label = f"Task {payload.task_id} chunk {payload.chunk_index + 1}/{payload.total_chunks}"
    db.update_chunk_status(payload.task_id, payload.chunk_index, "processing",
                           items_count=len(payload.items))
    logger.info(f"{label}: translating {len(payload.items)} keys")

    try:
        translated = translator.translate_batch(
            payload.items,
            payload.source_language,
            payload.target_language,
            payload.context,
        )

        source_by_path = dict(payload.items)
        translated_by_path = {path: text for path, text in translated if path in source_by_path}

        records = [
            _record(payload, path, source_by_path[path], text, failed=False)
            for path, text in translated_by_path.items()
        ]
        db.save_translations(records)

        missing = [(path, text) for path, text in payload.items if path not in translated_by_path]
        if missing:
            logger.warning(f"{label}: translator skipped {len(missing)} keys, keeping source text")
            _save_fallback_records(payload, missing)

        snapshot = db.complete_chunk(
            payload.task_id, payload.chunk_index,
            items_count=len(payload.items),
            translated_count=len(records),
        )
        logger.info(f"{label}: completed ({len(records)}/{len(payload.items)} translated)")
        return snapshot

    except Exception as e:
        error_message = f"{type(e).__name__}: {e}"
        logger.error(f"{label}: failed - {error_message}")
        try:
            _save_fallback_records(payload, payload.items)
        finally:
            db.update_chunk_status(payload.task_id, payload.chunk_index, "failed",
                                   error_message=error_message)
        raise


def run_chunk(
    payload: ChunkPayload,
    translator,
    signals: CompletionSignals = completion_signals,
    max_attempts: int = CHUNK_MAX_ATTEMPTS,
    retry_delay: float = 2.0,
) -> bool:
    """
    Translate a chunk with bounded retries, then run the completion check.

    The failed chunk counter moves only after the last attempt, so a chunk
    counts once whatever the number of attempts.

    Returns:
        True if the chunk ended completed
    """
    max_attempts = max(int(max_attempts), 1)
    snapshot = None
    succeeded = False

    for attempt in range(1, max_attempts + 1):
        try:
            snapshot = translate_chunk(payload, translator)
            succeeded = True
            break
        except Exception as e:
            if attempt < max_attempts:
                wait_time = retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Task {payload.task_id} chunk {payload.chunk_index}: attempt {attempt}/{max_attempts} "
                    f"failed ({e}), retrying in {wait_time}s"
                )
                if wait_time > 0:
                    time.sleep(wait_time)
            else:
                logger.error(
                    f"Task {payload.task_id} chunk {payload.chunk_index}: giving up after {max_attempts} attempts"
                )
                snapshot = db.increment_failed_chunks(payload.task_id)

    check_completion(payload.task_id, snapshot, signals)
    return succeeded


def check_completion(task_id: int, snapshot: Optional[Dict[str, int]],
                     signals: CompletionSignals = completion_signals) -> bool:
    """
    Send the task's completion signal if this worker was the last one in.

    The snapshot is read in the same transaction as this worker's own
    increment, so exactly one worker sees finished == total.
    """
    if not snapshot:
        return False

    total = snapshot['total_chunks']
    failed = snapshot['failed_chunks']
    finished = snapshot['completed_chunks'] + failed
    if total == 0 or finished != total:
        return False

    error = format_failed_chunks_error(failed) if failed else None
    signals.send(task_id, success=failed == 0, error=error)
    return True


class ChunkDispatcher:
    """
    Bounded pool of chunk workers.

    dispatch() returns immediately; at most max_workers chunks translate at
    the same time and the rest queue.
    """

    def __init__(
        self,
        max_workers: int = MAX_CONCURRENT_CHUNKS,
        max_attempts: int = CHUNK_MAX_ATTEMPTS,
        retry_delay: float = 2.0,
        signals: CompletionSignals = completion_signals,
    ):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.signals = signals
        self._executor = ThreadPoolExecutor(
            max_workers=max(int(max_workers), 1),
            thread_name_prefix="chunk-worker",
        )

    def dispatch(self, payload: ChunkPayload, translator) -> Future:
        future = self._executor.submit(
            run_chunk,
            payload,
            translator,
            self.signals,
            self.max_attempts,
            self.retry_delay,
        )
        future.add_done_callback(lambda f: self._log_unexpected_error(payload, f))
        return future

    @staticmethod
    def _log_unexpected_error(payload: ChunkPayload, future: Future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                f"Task {payload.task_id} chunk {payload.chunk_index}: worker crashed: "
                f"{type(exc).__name__}: {exc}"
            )

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
