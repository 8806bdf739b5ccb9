"""Action engine: serialized execution with read-only status."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from droidact.core.action_queue import ActionQueue
from droidact.core.artifacts import ArtifactCapturer
from droidact.core.config import DroidactConfig
from droidact.core.errors import ActionFailedError, UnknownActionError
from droidact.core.interpreter import ExecutionResult, StepInterpreter
from droidact.core.interstitial import InterstitialWatchdog
from droidact.core.snapshot_cache import SnapshotCache
from droidact.core.ui_element_parser import UIElementParser
from droidact.models.action import Action

if TYPE_CHECKING:
    from droidact.core.device_controller import DeviceController

logger = logging.getLogger("droidact.engine")

READINESS_TIMEOUT = 3.0


@dataclass(frozen=True)
class InFlight:
    action_id: str
    started_at: str


@dataclass(frozen=True)
class EngineState:
    """Snapshot of the engine's status."""

    in_flight: InFlight | None
    last_result: ExecutionResult | None


@dataclass(frozen=True)
class Readiness:
    device_reachable: bool
    boot_completed: bool


class ActionEngine:
    """Run actions one at a time against a single device.

    Create one engine per device for the lifetime of the host process and
    pass it to whatever needs it. Status queries never wait on the
    execution lane.
    """

    def __init__(
        self,
        device: DeviceController,
        actions: Mapping[str, Action],
        config: DroidactConfig | None = None,
        artifacts_dir: Path | None = None,
    ):
        """Initialize engine.

        Args:
            device: Device to drive
            actions: Action table keyed by action id, already validated
            config: Configuration (defaults if not provided)
            artifacts_dir: Override for config.artifacts_dir
        """
        self._device = device
        self._actions = actions
        self._config = config or DroidactConfig()

        parser = UIElementParser()
        self._cache = SnapshotCache(device, ttl=self._config.polling.snapshot_ttl)
        self._watchdog = InterstitialWatchdog(device, parser)
        self._artifacts = ArtifactCapturer(device, artifacts_dir or self._config.artifacts_dir)
        self._interpreter = StepInterpreter(
            device,
            self._cache,
            self._watchdog,
            self._artifacts,
            config=self._config,
            parser=parser,
        )
        self._queue: ActionQueue[ExecutionResult] = ActionQueue(self._run)

        self._state_lock = threading.Lock()
        self._in_flight: InFlight | None = None
        self._last_result: ExecutionResult | None = None

    @property
    def actions(self) -> Mapping[str, Action]:
        return self._actions

    def enqueue(self, action_id: str) -> Future:
        """Accept a request now; it runs after every earlier request settles.

        Returns:
            Future resolving to an ExecutionResult, or failing with
            UnknownActionError or ActionFailedError
        """
        return self._queue.submit(action_id)

    def run_action(self, action_id: str) -> ExecutionResult:
        """Run an action and wait for its result.

        Raises:
            UnknownActionError: If action_id is not in the action table
            ActionFailedError: If the action fails
        """
        return self.enqueue(action_id).result()

    def get_state(self) -> EngineState:
        with self._state_lock:
            return EngineState(in_flight=self._in_flight, last_result=self._last_result)

    def readiness_check(self) -> Readiness:
        """Check whether the device is reachable and booted."""
        try:
            self._device.wait_for_device(READINESS_TIMEOUT)
        except Exception as e:
            logger.debug("Device not reachable: %s", e)
            return Readiness(device_reachable=False, boot_completed=False)

        try:
            booted = self._device.get_property("sys.boot_completed") == "1"
        except Exception as e:
            logger.debug("Boot state unavailable: %s", e)
            booted = False
        return Readiness(device_reachable=True, boot_completed=booted)

    def close(self) -> None:
        """Stop accepting work and wait for queued actions to finish."""
        self._queue.shutdown(wait=True)

    def __enter__(self) -> ActionEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _run(self, action_id: str) -> ExecutionResult:
        action = self._actions.get(action_id)
        if action is None:
            logger.warning("Unknown action requested: %s", action_id)
            raise UnknownActionError(action_id)

        started_at = datetime.now(timezone.utc)
        with self._state_lock:
            self._in_flight = InFlight(action_id, started_at.isoformat())

        try:
            result = self._interpreter.execute(action_id, action, started_at=started_at)
        except ActionFailedError as e:
            self._record(e.result)
            raise
        else:
            self._record(result)
            return result
        finally:
            with self._state_lock:
                self._in_flight = None

    def _record(self, result: ExecutionResult) -> None:
        with self._state_lock:
            self._last_result = result
