"""
In-process "job completed" signal channel.

Chunk workers send a signal keyed by task id; the coordinator of that task
blocks on it with a deadline. A signal sent before anyone waits is kept
until consumed, and only the first signal per wait counts.

Once a coordinator is done with a task it closes the task's channel, and
signals arriving after that (chunks outliving a timeout) are dropped.
"""

import threading
import time
from collections import OrderedDict
from typing import Dict, Any, Optional

from json_translator.logger import get_logger

logger = get_logger(__name__)

# Closed task ids remembered to drop late signals
CLOSED_TASKS_LIMIT = 1000


class CompletionSignals:
    """Completion signals keyed by task id."""

    def __init__(self, closed_limit: int = CLOSED_TASKS_LIMIT):
        self._condition = threading.Condition()
        self._pending: Dict[int, Dict[str, Any]] = {}
        self._closed: "OrderedDict[int, None]" = OrderedDict()
        self._closed_limit = closed_limit

    def send(self, task_id: int, success: bool, error: Optional[str] = None) -> bool:
        """
        Deliver a completion signal.

        Returns False when a signal for the task is already waiting to be
        consumed, or when the task's channel is closed; the signal is dropped.
        """
        with self._condition:
            if task_id in self._closed:
                logger.debug(f"Completion signal for closed task {task_id} dropped")
                return False
            if task_id in self._pending:
                logger.debug(f"Duplicate completion signal for task {task_id} ignored")
                return False
            self._pending[task_id] = {'task_id': task_id, 'success': success, 'error': error}
            self._condition.notify_all()
        logger.info(f"Completion signal sent for task {task_id} (success={success})")
        return True

    def wait_for(self, task_id: int, timeout: float) -> Optional[Dict[str, Any]]:
        """Block until the task's signal arrives; None on timeout."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while task_id not in self._pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._condition.wait(remaining)
            return self._pending.pop(task_id)

    def reset(self, task_id: int):
        """Reopen a task's channel without any signal left over from an earlier attempt."""
        with self._condition:
            self._pending.pop(task_id, None)
            self._closed.pop(task_id, None)

    def close(self, task_id: int):
        """Drop any unconsumed signal and ignore the task's signals from now on."""
        with self._condition:
            self._pending.pop(task_id, None)
            self._closed[task_id] = None
            self._closed.move_to_end(task_id)
            while len(self._closed) > self._closed_limit:
                self._closed.popitem(last=False)


completion_signals = CompletionSignals()
