"""Core modules for droidact."""

from droidact.core.action_queue import ActionQueue
from droidact.core.artifacts import ArtifactCapturer
from droidact.core.config import (
    ConfigLoader,
    DroidactConfig,
    PollingConfig,
    RetryConfig,
    TimeoutConfig,
)
from droidact.core.deadline import ExecutionContext, call_with_deadline
from droidact.core.device_controller import DeviceController
from droidact.core.engine import ActionEngine, EngineState, InFlight, Readiness
from droidact.core.errors import (
    ActionFailedError,
    DeadlineExceededError,
    DeviceUnreachableError,
    EngineError,
    MalformedSnapshotError,
    SelectorNotFoundError,
    UnknownActionError,
)
from droidact.core.interpreter import ExecutionResult, StepInterpreter
from droidact.core.interstitial import InterstitialWatchdog
from droidact.core.parser import ActionParser, ParseError
from droidact.core.selector_matcher import match_first, matches
from droidact.core.snapshot_cache import CacheEntry, SnapshotCache
from droidact.core.ui_element_parser import Bounds, UIElement, UIElementParser

__all__ = [
    "ActionEngine",
    "ActionFailedError",
    "ActionParser",
    "ActionQueue",
    "ArtifactCapturer",
    "Bounds",
    "CacheEntry",
    "ConfigLoader",
    "DeadlineExceededError",
    "DeviceController",
    "DeviceUnreachableError",
    "DroidactConfig",
    "EngineError",
    "EngineState",
    "ExecutionContext",
    "ExecutionResult",
    "InFlight",
    "InterstitialWatchdog",
    "MalformedSnapshotError",
    "ParseError",
    "PollingConfig",
    "Readiness",
    "RetryConfig",
    "SelectorNotFoundError",
    "SnapshotCache",
    "StepInterpreter",
    "TimeoutConfig",
    "UIElement",
    "UIElementParser",
    "UnknownActionError",
    "call_with_deadline",
    "match_first",
    "matches",
]
