"""Single-lane execution queue."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Generic, TypeVar

logger = logging.getLogger("droidact.queue")

T = TypeVar("T")


class ActionQueue(Generic[T]):
    """Run jobs one at a time, strictly in arrival order.

    Submissions return immediately with a Future. A failed job settles its
    own Future and the next job starts as usual.
    """

    def __init__(self, worker: Callable[[str], T]):
        self._worker = worker
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="droidact-lane")
        self._lock = threading.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Number of accepted jobs that have not settled yet."""
        return self._pending

    def submit(self, action_id: str) -> Future:
        with self._lock:
            self._pending += 1
            pending = self._pending
        logger.debug("Queued %s (%d pending)", action_id, pending)
        future = self._executor.submit(self._worker, action_id)
        future.add_done_callback(self._settled)
        return future

    def _settled(self, future: Future) -> None:
        with self._lock:
            self._pending -= 1

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
