"""
Translation module - Core translation functionality

This module provides:
- TranslationCoordinator: plans, fans out and finalizes one translation task
- Chunk workers and the bounded ChunkDispatcher
- Cache substitution against earlier translations
- CompletionSignals: the "task completed" rendezvous
- TaskProgress: progress/ETA reads
- Flatten/rebuild and chunking utilities
"""

from json_translator.translation.progress import TaskProgress, get_task_progress
from json_translator.translation.signals import CompletionSignals, completion_signals
from json_translator.translation.cache import substitute_cached, is_reusable
from json_translator.translation.worker import (
    ChunkPayload,
    ChunkDispatcher,
    translate_chunk,
    run_chunk,
    check_completion,
)
from json_translator.translation.coordinator import TranslationCoordinator
from json_translator.translation.utils import (
    flatten_json,
    build_json_from_pairs,
    merge_into_document,
    select_leaves,
    chunk_entries,
)
