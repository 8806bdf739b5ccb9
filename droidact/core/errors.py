"""Error taxonomy for action execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from droidact.core.interpreter import ExecutionResult


class EngineError(Exception):
    """Base class for action engine errors."""

    kind = "EngineError"


class UnknownActionError(EngineError):
    """Requested action id is not in the action table."""

    kind = "UnknownAction"

    def __init__(self, action_id: str):
        super().__init__(f"Unknown action: {action_id}")
        self.action_id = action_id


class DeviceUnreachableError(EngineError):
    """adb transport failed or a device command exceeded its timeout."""

    kind = "DeviceUnreachable"


class DeadlineExceededError(EngineError):
    """A step- or action-level deadline elapsed."""

    kind = "Timeout"


class SelectorNotFoundError(EngineError):
    """Polling exhausted without any selector matching."""

    kind = "SelectorNotFound"


class MalformedSnapshotError(EngineError):
    """Accessibility dump could not be parsed."""

    kind = "MalformedSnapshot"


class ActionFailedError(EngineError):
    """Terminal failure of an action, carrying the finalized result."""

    kind = "ActionFailed"

    def __init__(self, result: ExecutionResult, cause: BaseException | None = None):
        super().__init__(result.error or "Action failed")
        self.result = result
        self.cause = cause

    @property
    def action_id(self) -> str:
        return self.result.action_id

    @property
    def duration_ms(self) -> int:
        return self.result.duration_ms

    @property
    def error(self) -> str | None:
        return self.result.error


def error_kind(error: BaseException) -> str:
    """Return the taxonomy name for an error raised during an action."""
    if isinstance(error, EngineError):
        return error.kind
    return ActionFailedError.kind
