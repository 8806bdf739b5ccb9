"""YAML action file parser."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from droidact.core.config import parse_duration
from droidact.core.device_controller import resolve_keycode
from droidact.models.action import (
    STEP_TYPES,
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


class ParseError(Exception):
    """Error parsing action file."""

    pass


_SELECTOR_KEYS = {
    "text": "text",
    "textContains": "text_contains",
    "resourceId": "resource_id",
    "resourceIdContains": "resource_id_contains",
    "contentDesc": "content_desc",
    "contentDescContains": "content_desc_contains",
}

_LEGACY_TYPES = {"ensure_emulator_ready": "ensure_device_ready"}

_INVALID = object()


class ActionParser:
    """Parse YAML action files into Action objects."""

    @classmethod
    def parse(cls, path: Path) -> dict[str, Action]:
        """Parse a YAML action file.

        Args:
            path: Path to YAML file

        Returns:
            Mapping of action id to Action

        Raises:
            ParseError: If file is invalid
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ParseError(f"Action file not found: {path}")
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid YAML: {e}")

        return cls.parse_data(data)

    @classmethod
    def parse_data(cls, data: Any) -> dict[str, Action]:
        """Parse already-loaded YAML data."""
        if data is None:
            raise ParseError("Action file is empty")
        if not isinstance(data, dict):
            raise ParseError("Action file must be a YAML mapping")

        actions = data.get("actions")
        if not isinstance(actions, dict) or not actions:
            raise ParseError("Action file must define a non-empty 'actions' mapping")

        return {
            str(action_id): cls._parse_action(str(action_id), definition)
            for action_id, definition in actions.items()
        }

    @classmethod
    def _parse_action(cls, action_id: str, data: Any) -> Action:
        if not isinstance(data, dict):
            raise ParseError(f"Action '{action_id}' must be a mapping")

        steps = data.get("steps")
        if not isinstance(steps, list) or not steps:
            raise ParseError(f"Action '{action_id}' must have at least one step")

        parsed = []
        for index, item in enumerate(steps):
            try:
                parsed.append(cls._parse_step(item))
            except (ParseError, ValueError, TypeError) as e:
                raise ParseError(f"Action '{action_id}' step {index}: {e}")

        try:
            timeout = cls._duration(data, "timeout")
        except ValueError as e:
            raise ParseError(f"Action '{action_id}': {e}")

        description = data.get("description")
        return Action(
            steps=tuple(parsed),
            timeout=timeout,
            description=str(description) if description is not None else None,
        )

    @classmethod
    def _parse_step(cls, data: Any) -> Step:
        """Parse a single step."""
        if isinstance(data, str):
            # Field-less step like "wake_and_unlock"
            step_type, fields = data, {}
        elif isinstance(data, dict) and "type" in data:
            step_type, fields = data["type"], data
        elif isinstance(data, dict) and len(data) == 1:
            # Key-as-tag syntax: `sleep: {durationMs: 200}`
            step_type, fields = next(iter(data.items()))
            fields = fields if isinstance(fields, dict) else {}
        else:
            raise ParseError(f"Invalid step: {data}")

        step_type = _LEGACY_TYPES.get(step_type, step_type)
        if step_type not in STEP_TYPES:
            raise ParseError(f"Unknown step type: {step_type}")

        builder = getattr(cls, f"_build_{step_type}")
        return builder(fields)

    @classmethod
    def _parse_steps(cls, data: Any) -> tuple[Step, ...]:
        if not isinstance(data, list):
            raise ParseError("'steps' must be a list")
        return tuple(cls._parse_step(item) for item in data)

    @classmethod
    def _parse_selector(cls, data: Any) -> Selector:
        if not isinstance(data, dict):
            raise ParseError(f"Selector must be a mapping: {data}")
        values = {
            field_name: str(data[key])
            for key, field_name in _SELECTOR_KEYS.items()
            if data.get(key) not in (None, "")
        }
        return Selector(**values)

    @classmethod
    def _duration(cls, data: dict[str, Any], key: str) -> float | None:
        """Read a duration field in seconds.

        Accepts `key` as a duration ('5s', '500ms', or seconds) and the
        legacy `{key}Ms` as integer milliseconds.
        """
        if data.get(key) is not None:
            value = parse_duration(data[key], _INVALID)
            if value is _INVALID or value < 0:
                raise ValueError(f"Invalid duration for '{key}': {data[key]!r}")
            return value
        if data.get(f"{key}Ms") is not None:
            millis = data[f"{key}Ms"]
            if isinstance(millis, bool) or not isinstance(millis, (int, float)) or millis < 0:
                raise ValueError(f"Invalid duration for '{key}Ms': {millis!r}")
            return millis / 1000
        return None

    @classmethod
    def _required(cls, data: dict[str, Any], key: str) -> Any:
        if data.get(key) in (None, ""):
            raise ParseError(f"Missing required field: {key}")
        return data[key]

    # Builders, one per step type

    @classmethod
    def _build_ensure_device_ready(cls, data: dict[str, Any]) -> EnsureDeviceReady:
        return EnsureDeviceReady(timeout=cls._duration(data, "timeout"))

    @classmethod
    def _build_wake_and_unlock(cls, data: dict[str, Any]) -> WakeAndUnlock:
        return WakeAndUnlock()

    @classmethod
    def _build_launch_app(cls, data: dict[str, Any]) -> LaunchApp:
        return LaunchApp(
            package=str(cls._required(data, "package")),
            activity=data.get("activity") or None,
        )

    @classmethod
    def _build_ensure_app_open(cls, data: dict[str, Any]) -> EnsureAppOpen:
        selector = data.get("alreadyOpenSelector")
        return EnsureAppOpen(
            package=str(cls._required(data, "package")),
            activity=data.get("activity") or None,
            already_open_selector=cls._parse_selector(selector) if selector else None,
            delay_if_open=cls._duration(data, "delayIfOpen"),
            delay_if_launch=cls._duration(data, "delayIfLaunch"),
        )

    @classmethod
    def _build_tap_selector(cls, data: dict[str, Any]) -> TapSelector:
        return TapSelector(
            selector=cls._parse_selector(cls._required(data, "selector")),
            timeout=cls._duration(data, "timeout"),
        )

    @classmethod
    def _build_tap_coordinates(cls, data: dict[str, Any]) -> TapCoordinates:
        x, y = int(cls._required(data, "x")), int(cls._required(data, "y"))
        if x < 0 or y < 0:
            raise ParseError(f"Coordinates must be non-negative: ({x}, {y})")
        return TapCoordinates(x=x, y=y)

    @classmethod
    def _build_wait_for_text(cls, data: dict[str, Any]) -> WaitForText:
        return WaitForText(
            text=data.get("text") or None,
            text_contains=data.get("textContains") or None,
            timeout=cls._duration(data, "timeout"),
        )

    @classmethod
    def _build_wait_for_selector(cls, data: dict[str, Any]) -> WaitForSelector:
        return WaitForSelector(
            selector=cls._parse_selector(cls._required(data, "selector")),
            timeout=cls._duration(data, "timeout"),
        )

    @classmethod
    def _build_wait_for_any_selector(cls, data: dict[str, Any]) -> WaitForAnySelector:
        selectors = cls._required(data, "selectors")
        if not isinstance(selectors, list):
            raise ParseError("'selectors' must be a list")
        return WaitForAnySelector(
            selectors=tuple(cls._parse_selector(item) for item in selectors),
            timeout=cls._duration(data, "timeout"),
        )

    @classmethod
    def _build_sleep(cls, data: dict[str, Any]) -> Sleep:
        duration = cls._required(data, "durationMs")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ParseError(f"durationMs must be a positive integer: {duration!r}")
        return Sleep(duration_ms=duration)

    @classmethod
    def _build_input_text(cls, data: dict[str, Any]) -> InputText:
        if "text" not in data or data["text"] is None:
            raise ParseError("Missing required field: text")
        return InputText(text=str(data["text"]))

    @classmethod
    def _build_keyevent(cls, data: dict[str, Any]) -> KeyEvent:
        code = data.get("code", data.get("keyCode"))
        if code is None or isinstance(code, bool) or not isinstance(code, (int, str)):
            raise ParseError(f"keyevent requires a key code or name: {code!r}")
        resolve_keycode(code)
        return KeyEvent(code=code)

    @classmethod
    def _build_retry(cls, data: dict[str, Any]) -> Retry:
        return Retry(
            attempts=int(cls._required(data, "attempts")),
            steps=cls._parse_steps(data.get("steps")),
            delay=cls._duration(data, "delay"),
        )

    @classmethod
    def _build_repeat(cls, data: dict[str, Any]) -> Repeat:
        return Repeat(
            count=int(cls._required(data, "count")),
            steps=cls._parse_steps(data.get("steps")),
            delay=cls._duration(data, "delay"),
        )
