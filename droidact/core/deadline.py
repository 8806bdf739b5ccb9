"""Deadline race and cooperative cancellation for action bodies."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from droidact.core.errors import DeadlineExceededError

T = TypeVar("T")


class ExecutionContext:
    """Per-execution state threaded through the interpreter.

    Once the action deadline fires the context is cancelled; sleeps and
    checkpoints then raise so an abandoned body stops issuing commands.
    """

    def __init__(self, action_id: str):
        self.action_id = action_id
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def check(self) -> None:
        if self._cancel.is_set():
            raise DeadlineExceededError(f"Action {self.action_id} was abandoned after its deadline")

    def sleep(self, seconds: float) -> None:
        """Sleep unless cancelled in the meantime."""
        if seconds > 0:
            self._cancel.wait(seconds)
        self.check()


def call_with_deadline(
    func: Callable[[], T],
    timeout: float,
    label: str,
    context: ExecutionContext,
) -> T:
    """Run func in a helper thread and race it against timeout.

    Whichever settles first decides the outcome. On timeout the context
    is cancelled and the body's eventual result is discarded.

    Raises:
        DeadlineExceededError: If func does not finish within timeout
    """
    future: Future = Future()

    def runner() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(func())
        except BaseException as e:
            future.set_exception(e)

    thread = threading.Thread(target=runner, name=f"droidact-{label}", daemon=True)
    thread.start()

    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        # func itself may have raised TimeoutError
        if future.done():
            return future.result()
        context.cancel()
        raise DeadlineExceededError(
            f"{label} timed out after {int(timeout * 1000)}ms"
        ) from None
