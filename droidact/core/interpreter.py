"""Step interpreter: turns an action's step tree into device operations."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from droidact.core.config import DroidactConfig
from droidact.core.deadline import ExecutionContext, call_with_deadline
from droidact.core.errors import ActionFailedError, SelectorNotFoundError, error_kind
from droidact.core.selector_matcher import match_first
from droidact.core.ui_element_parser import Bounds, UIElementParser
from droidact.models.action import (
    Action,
    EnsureAppOpen,
    EnsureDeviceReady,
    InputText,
    KeyEvent,
    LaunchApp,
    Repeat,
    Retry,
    Selector,
    Sleep,
    Step,
    TapCoordinates,
    TapSelector,
    WaitForAnySelector,
    WaitForSelector,
    WaitForText,
    WakeAndUnlock,
)

if TYPE_CHECKING:
    from droidact.core.artifacts import ArtifactCapturer
    from droidact.core.device_controller import DeviceController
    from droidact.core.interstitial import InterstitialWatchdog
    from droidact.core.snapshot_cache import SnapshotCache

logger = logging.getLogger("droidact.interpreter")

KEYCODE_WAKEUP = 224
KEYCODE_MENU = 82
KEYCODE_HOME = 3


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one action execution."""

    action_id: str
    status: str  # "ok" or "error"
    started_at: str
    duration_ms: int
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def split_ready_prefix(steps: Sequence[Step]) -> tuple[list[Step], list[Step]]:
    """Split off the leading run of ensure_device_ready steps."""
    index = 0
    while index < len(steps) and isinstance(steps[index], EnsureDeviceReady):
        index += 1
    return list(steps[:index]), list(steps[index:])


class StepInterpreter:
    """Execute action step trees on a device.

    Never called concurrently with itself; callers serialize executions.
    """

    def __init__(
        self,
        device: DeviceController,
        cache: SnapshotCache,
        watchdog: InterstitialWatchdog,
        artifacts: ArtifactCapturer,
        config: DroidactConfig | None = None,
        parser: UIElementParser | None = None,
    ):
        self._device = device
        self._cache = cache
        self._watchdog = watchdog
        self._artifacts = artifacts
        self._config = config or DroidactConfig()
        self._parser = parser or UIElementParser()

    def execute(
        self,
        action_id: str,
        action: Action,
        started_at: datetime | None = None,
    ) -> ExecutionResult:
        """Execute an action and return its result.

        Leading ensure_device_ready steps run outside the action deadline,
        since boot time must not count against it. The remaining steps race
        against ``action.timeout`` (or the configured default).

        Raises:
            ActionFailedError: If any step fails or the deadline elapses
        """
        started_at = started_at or datetime.now(timezone.utc)
        start = time.monotonic()
        context = ExecutionContext(action_id)
        ready_steps, body_steps = split_ready_prefix(action.steps)
        timeout = action.timeout if action.timeout is not None else self._config.timeouts.action

        logger.info("Starting action: %s", action_id)
        logger.debug(
            "Action %s: ready_steps=%d, body_steps=%d, timeout=%.1fs",
            action_id, len(ready_steps), len(body_steps), timeout,
        )

        try:
            self._run_steps(ready_steps, context)
            if body_steps:
                call_with_deadline(
                    lambda: self._run_body(body_steps, context),
                    timeout,
                    f"Action {action_id}",
                    context,
                )
        except Exception as e:
            message = str(e) or type(e).__name__
            self._artifacts.capture(action_id, message)
            result = ExecutionResult(
                action_id=action_id,
                status="error",
                started_at=started_at.isoformat(),
                duration_ms=self._elapsed_ms(start),
                error=message,
                error_kind=error_kind(e),
            )
            logger.error(
                "Action failed: %s - %s after %dms (%s)",
                action_id, result.error_kind, result.duration_ms, message,
            )
            raise ActionFailedError(result, e) from e

        result = ExecutionResult(
            action_id=action_id,
            status="ok",
            started_at=started_at.isoformat(),
            duration_ms=self._elapsed_ms(start),
        )
        logger.info("Action completed: %s in %dms", action_id, result.duration_ms)
        return result

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    def _run_body(self, steps: Sequence[Step], context: ExecutionContext) -> None:
        self._dismiss_interstitial(context)
        self._run_steps(steps, context)

    def _run_steps(self, steps: Sequence[Step], context: ExecutionContext) -> None:
        for index, step in enumerate(steps):
            context.check()
            if not isinstance(step, EnsureDeviceReady):
                self._dismiss_interstitial(context)

            logger.debug("%s: step %d %s starting", context.action_id, index, step.type)
            step_start = time.monotonic()
            self.execute_step(step, context)
            logger.debug(
                "%s: step %d %s done in %.2fs",
                context.action_id, index, step.type, time.monotonic() - step_start,
            )

    def execute_step(self, step: Step, context: ExecutionContext) -> None:
        """Dispatch a single step by its tag."""
        handler = getattr(self, f"_step_{step.type}", None)
        if handler is None:
            raise ValueError(f"Unsupported step type: {step.type}")
        handler(step, context)

    def _dismiss_interstitial(self, context: ExecutionContext) -> None:
        """Best-effort proactive interstitial check; never aborts the action."""
        try:
            if self._watchdog.check(self._cache.get(), context):
                self._cache.invalidate()
                context.sleep(self._config.polling.recovery_pause)
        except Exception as e:
            if context.cancelled:
                raise
            logger.debug("Interstitial check skipped: %s", e)

    # Step handlers

    def _step_ensure_device_ready(self, step: EnsureDeviceReady, context: ExecutionContext) -> None:
        timeout = step.timeout if step.timeout is not None else self._config.timeouts.device_ready
        self._device.wait_for_device(min(timeout, self._config.timeouts.wait_for_device))
        self._device.wait_for_boot_complete(timeout, self._config.polling.boot_poll_interval)

    def _step_wake_and_unlock(self, step: WakeAndUnlock, context: ExecutionContext) -> None:
        # Waking an awake screen can toggle it off, so only act when off
        if self._device.is_screen_on():
            logger.debug("Screen already on, skipping wake")
            return

        for code in (KEYCODE_WAKEUP, KEYCODE_MENU, KEYCODE_HOME):
            context.check()
            self._device.keyevent(code)
        self._cache.invalidate()

    def _step_launch_app(self, step: LaunchApp, context: ExecutionContext) -> None:
        self._device.start_app(step.package, step.activity)
        self._cache.invalidate()

    def _step_ensure_app_open(self, step: EnsureAppOpen, context: ExecutionContext) -> None:
        start = time.monotonic()

        if step.already_open_selector is not None:
            elements = self._parser.parse(self._cache.get())
            if match_first(elements, [step.already_open_selector]):
                logger.debug("%s already open (selector matched)", step.package)
                return
        else:
            foreground = self._device.foreground_package()
            if foreground == step.package:
                logger.debug("%s already in foreground", step.package)
                self._sleep_remaining(start, step.delay_if_open, context)
                return
            logger.debug("Foreground is %s, launching %s", foreground, step.package)

        context.check()
        self._device.start_app(step.package, step.activity)
        self._cache.invalidate()
        self._sleep_remaining(start, step.delay_if_launch, context)

    def _sleep_remaining(
        self, start: float, delay: float | None, context: ExecutionContext
    ) -> None:
        """Sleep until ``delay`` seconds have passed since ``start``."""
        if not delay:
            return
        remaining = delay - (time.monotonic() - start)
        if remaining > 0:
            context.sleep(remaining)

    def _step_tap_selector(self, step: TapSelector, context: ExecutionContext) -> None:
        _, bounds = self._wait_for_any([step.selector], step.timeout, context)
        x, y = bounds.center()
        context.check()
        self._device.tap(x, y)
        self._cache.invalidate()

    def _step_tap_coordinates(self, step: TapCoordinates, context: ExecutionContext) -> None:
        self._device.tap(step.x, step.y)
        self._cache.invalidate()

    def _step_wait_for_text(self, step: WaitForText, context: ExecutionContext) -> None:
        self._wait_for_any([step.selector()], step.timeout, context)

    def _step_wait_for_selector(self, step: WaitForSelector, context: ExecutionContext) -> None:
        self._wait_for_any([step.selector], step.timeout, context)

    def _step_wait_for_any_selector(
        self, step: WaitForAnySelector, context: ExecutionContext
    ) -> None:
        selector, _ = self._wait_for_any(step.selectors, step.timeout, context)
        logger.debug("Matched selector %s", selector.describe())

    def _step_sleep(self, step: Sleep, context: ExecutionContext) -> None:
        context.sleep(step.duration_ms / 1000)

    def _step_input_text(self, step: InputText, context: ExecutionContext) -> None:
        self._device.input_text(step.text)
        self._cache.invalidate()

    def _step_keyevent(self, step: KeyEvent, context: ExecutionContext) -> None:
        self._device.keyevent(step.code)
        self._cache.invalidate()

    def _step_retry(self, step: Retry, context: ExecutionContext) -> None:
        delay = step.delay if step.delay is not None else self._config.retry.delay

        for attempt in range(1, step.attempts + 1):
            try:
                self._run_steps(step.steps, context)
                return
            except Exception as e:
                if attempt == step.attempts or context.cancelled:
                    raise
                logger.warning(
                    "%s: retry attempt %d/%d failed, retrying in %.2fs: %s",
                    context.action_id, attempt, step.attempts, delay, e,
                )
                context.sleep(delay)

    def _step_repeat(self, step: Repeat, context: ExecutionContext) -> None:
        delay = step.delay if step.delay is not None else self._config.retry.repeat_delay

        for iteration in range(step.count):
            logger.debug("repeat: iteration %d/%d", iteration + 1, step.count)
            self._run_steps(step.steps, context)
            if iteration < step.count - 1:
                context.sleep(delay)

    # Polling

    def _wait_for_any(
        self,
        selectors: Sequence[Selector],
        timeout: float | None,
        context: ExecutionContext,
    ) -> tuple[Selector, Bounds]:
        """Poll fresh UI dumps until any selector matches.

        Errors raised while polling are remembered and only re-raised if the
        deadline passes without a match.

        Raises:
            SelectorNotFoundError: If nothing matched before the deadline
        """
        timeout = timeout if timeout is not None else self._config.timeouts.action
        poll_interval = self._config.polling.poll_interval
        deadline = time.monotonic() + timeout
        last_error: Exception | None = None
        attempts = 0

        while time.monotonic() < deadline:
            context.check()
            attempts += 1
            recovered = False
            self._cache.invalidate()

            try:
                elements = self._parser.parse(self._cache.get())
                found = match_first(elements, selectors)
                if found:
                    logger.debug("Selector matched after %d poll(s)", attempts)
                    return found
                recovered = self._watchdog.dismiss_if_present(elements, context)
            except Exception as e:
                logger.debug("Poll %d failed: %s", attempts, e)
                last_error = e

            if recovered:
                self._cache.invalidate()
                context.sleep(self._config.polling.recovery_pause)
                continue

            context.sleep(min(poll_interval, max(0.0, deadline - time.monotonic())))

        if last_error is not None:
            raise last_error

        described = ", ".join(selector.describe() for selector in selectors)
        raise SelectorNotFoundError(
            f"Selector not found before timeout ({int(timeout * 1000)}ms): {described}"
        )
