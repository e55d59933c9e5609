"""
Background job helpers for translation tasks.

Each task's coordinator runs in its own daemon thread; chunk workers share
one bounded dispatcher across all tasks.

A running job holds a lease on the dispatcher it was handed. Resetting the
dispatcher (after a settings change) only detaches it; the old pool is shut
down once its last lease is released, so a live coordinator never sees a
closed pool.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from json_translator.config import get_translation_settings
from json_translator.core import database as db
from json_translator.logger import get_logger
from json_translator.translation.coordinator import TranslationCoordinator
from json_translator.translation.worker import ChunkDispatcher

logger = get_logger(__name__)

_dispatcher: Optional[ChunkDispatcher] = None
_dispatcher_lock = threading.Lock()
_leases: Dict[ChunkDispatcher, int] = {}


def _current_dispatcher() -> ChunkDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_translation_settings()
        _dispatcher = ChunkDispatcher(
            max_workers=settings.get("max_concurrent_chunks", 20),
            max_attempts=settings.get("chunk_max_attempts", 3),
            retry_delay=settings.get("chunk_retry_delay", 2.0),
        )
        logger.info(
            "Chunk dispatcher started (max_concurrent_chunks=%s)",
            settings.get("max_concurrent_chunks", 20),
        )
    return _dispatcher


@contextmanager
def lease_dispatcher() -> Iterator[ChunkDispatcher]:
    """Hold the shared dispatcher open for the duration of one job attempt."""
    with _dispatcher_lock:
        dispatcher = _current_dispatcher()
        _leases[dispatcher] = _leases.get(dispatcher, 0) + 1
    try:
        yield dispatcher
    finally:
        with _dispatcher_lock:
            _leases[dispatcher] -= 1
            if _leases[dispatcher] == 0:
                del _leases[dispatcher]
                if dispatcher is not _dispatcher:
                    # Detached by a reset while this job was running
                    dispatcher.shutdown(wait=False)
                    logger.info("Retired chunk dispatcher shut down")


def reset_dispatcher(wait: bool = False):
    """
    Detach the shared dispatcher so the next job picks up changed settings.

    A dispatcher still leased by a running job keeps accepting chunks until
    that job is done. wait=True shuts it down at once and waits for queued
    chunks; it is meant for process exit.
    """
    global _dispatcher
    with _dispatcher_lock:
        old, _dispatcher = _dispatcher, None
        if old is not None and (wait or old not in _leases):
            old.shutdown(wait=wait)


def _build_translator(model_override: Optional[str] = None, ai_provider: Optional[str] = None):
    from json_translator.ai.service import AIService

    return AIService(model_override=model_override, provider_override=ai_provider)


def _run_attempt(task_id, translator, dispatcher, settings, skip_cache, cache_project_id):
    coordinator = TranslationCoordinator(task_id, translator, dispatcher, settings=settings)
    return coordinator.run(skip_cache=skip_cache, cache_project_id=cache_project_id)


def _attach_token_usage(task_id: int, translator, result: Dict[str, Any]):
    """Log the provider token totals of a finished job and add them to its result."""
    get_usage = getattr(translator, "get_total_token_usage", None)
    if get_usage is None:
        return
    usage = get_usage()
    result["token_usage"] = usage
    logger.info(
        "Translation task %s token usage: %s prompt, %s completion",
        task_id,
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
    )


def run_translation_job(
    task_id: int,
    translator,
    dispatcher: Optional[ChunkDispatcher] = None,
    skip_cache: bool = False,
    cache_project_id: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run a task's coordinator with bounded retries.

    Without an injected dispatcher, every attempt leases the current shared
    one, so a retry after a settings change runs on the new pool.

    When every attempt raises, the task is marked failed with
    "<ExceptionType>: <message>" instead of letting the exception escape.
    """
    settings = get_translation_settings()
    attempts = max(int(max_attempts or settings.get("coordinator_max_attempts", 2)), 1)

    for attempt in range(1, attempts + 1):
        try:
            if dispatcher is not None:
                result = _run_attempt(task_id, translator, dispatcher, settings, skip_cache, cache_project_id)
            else:
                with lease_dispatcher() as leased:
                    result = _run_attempt(task_id, translator, leased, settings, skip_cache, cache_project_id)
            _attach_token_usage(task_id, translator, result)
            logger.info(
                "Translation task %s finished (status=%s, translated=%s/%s)",
                task_id,
                result["status"],
                result["translated_keys"],
                result["total_keys"],
            )
            return result
        except Exception as exc:
            error_type = type(exc).__name__
            error_message = str(exc)
            if attempt < attempts:
                logger.warning(
                    "Translation task %s attempt %s/%s failed: %s: %s, retrying",
                    task_id,
                    attempt,
                    attempts,
                    error_type,
                    error_message,
                )
                continue
            logger.exception(
                "✗ Translation task %s failed: %s: %s",
                task_id,
                error_type,
                error_message,
            )
            db.update_task(
                task_id,
                status="failed",
                error=f"{error_type}: {error_message}",
                completed_at=datetime.now().isoformat(),
            )

    task = db.get_task(task_id) or {}
    return {
        "task_id": task_id,
        "status": task.get("status", "failed"),
        "error": task.get("error"),
        "total_keys": task.get("total_keys") or 0,
        "translated_keys": task.get("translated_keys") or 0,
        "total_chunks": task.get("total_chunks") or 0,
        "completed_chunks": task.get("completed_chunks") or 0,
        "failed_chunks": task.get("failed_chunks") or 0,
        "reused_keys": 0,
    }


def start_translation_job(
    task_id: int,
    skip_cache: bool = False,
    cache_project_id: Optional[int] = None,
    model_override: Optional[str] = None,
    ai_provider: Optional[str] = None,
) -> threading.Thread:
    """Launch a task in a background thread and return immediately."""
    translator = _build_translator(model_override=model_override, ai_provider=ai_provider)
    thread = threading.Thread(
        target=run_translation_job,
        kwargs={
            "task_id": task_id,
            "translator": translator,
            "skip_cache": skip_cache,
            "cache_project_id": cache_project_id,
        },
        name=f"translation-task-{task_id}",
        daemon=True,
    )
    thread.start()
    logger.info(
        "Translation task %s started (skip_cache=%s, cache_project_id=%s)",
        task_id,
        skip_cache,
        cache_project_id,
    )
    return thread
