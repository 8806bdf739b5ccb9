"""Action and step data models."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Union


@dataclass(frozen=True)
class Selector:
    """Declarative descriptor of an on-screen element.

    Exact fields must equal the element attribute, ``*_contains`` fields
    must be a substring of it. Unset fields impose no constraint.
    """

    text: str | None = None
    text_contains: str | None = None
    resource_id: str | None = None
    resource_id_contains: str | None = None
    content_desc: str | None = None
    content_desc_contains: str | None = None

    def __post_init__(self) -> None:
        if not any(getattr(self, f.name) for f in fields(self)):
            raise ValueError("selector must define at least one match field")

    def describe(self) -> str:
        """Short human-readable form used in logs and errors."""
        parts = [
            f"{f.name}={getattr(self, f.name)!r}"
            for f in fields(self)
            if getattr(self, f.name)
        ]
        return "{" + ", ".join(parts) + "}"


@dataclass(frozen=True)
class EnsureDeviceReady:
    """Block until the device is reachable and has finished booting."""

    type = "ensure_device_ready"

    timeout: float | None = None


@dataclass(frozen=True)
class WakeAndUnlock:
    """Wake the screen and dismiss the keyguard if the screen is off."""

    type = "wake_and_unlock"


@dataclass(frozen=True)
class LaunchApp:
    type = "launch_app"

    package: str
    activity: str | None = None


@dataclass(frozen=True)
class EnsureAppOpen:
    """Launch an app unless it is already in the foreground."""

    type = "ensure_app_open"

    package: str
    activity: str | None = None
    already_open_selector: Selector | None = None
    delay_if_open: float | None = None
    delay_if_launch: float | None = None


@dataclass(frozen=True)
class TapSelector:
    type = "tap_selector"

    selector: Selector
    timeout: float | None = None


@dataclass(frozen=True)
class TapCoordinates:
    type = "tap_coordinates"

    x: int
    y: int


@dataclass(frozen=True)
class WaitForText:
    type = "wait_for_text"

    text: str | None = None
    text_contains: str | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not (self.text or self.text_contains):
            raise ValueError("wait_for_text requires text or textContains")

    def selector(self) -> Selector:
        return Selector(text=self.text, text_contains=self.text_contains)


@dataclass(frozen=True)
class WaitForSelector:
    type = "wait_for_selector"

    selector: Selector
    timeout: float | None = None


@dataclass(frozen=True)
class WaitForAnySelector:
    """Wait until any of several selectors matches; order is priority."""

    type = "wait_for_any_selector"

    selectors: tuple[Selector, ...]
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.selectors:
            raise ValueError("wait_for_any_selector requires at least one selector")


@dataclass(frozen=True)
class Sleep:
    type = "sleep"

    duration_ms: int


@dataclass(frozen=True)
class InputText:
    type = "input_text"

    text: str


@dataclass(frozen=True)
class KeyEvent:
    type = "keyevent"

    code: int | str


@dataclass(frozen=True)
class Retry:
    """Run nested steps until they succeed, up to ``attempts`` times."""

    type = "retry"

    attempts: int
    steps: tuple[Step, ...]
    delay: float | None = None

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"retry attempts must be >= 1: {self.attempts}")
        if not self.steps:
            raise ValueError("retry requires at least one step")


@dataclass(frozen=True)
class Repeat:
    """Run nested steps exactly ``count`` times."""

    type = "repeat"

    count: int
    steps: tuple[Step, ...]
    delay: float | None = None

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"repeat count must be >= 1: {self.count}")
        if not self.steps:
            raise ValueError("repeat requires at least one step")


Step = Union[
    EnsureDeviceReady,
    WakeAndUnlock,
    LaunchApp,
    EnsureAppOpen,
    TapSelector,
    TapCoordinates,
    WaitForText,
    WaitForSelector,
    WaitForAnySelector,
    Sleep,
    InputText,
    KeyEvent,
    Retry,
    Repeat,
]

STEP_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (
        EnsureDeviceReady,
        WakeAndUnlock,
        LaunchApp,
        EnsureAppOpen,
        TapSelector,
        TapCoordinates,
        WaitForText,
        WaitForSelector,
        WaitForAnySelector,
        Sleep,
        InputText,
        KeyEvent,
        Retry,
        Repeat,
    )
}


@dataclass(frozen=True)
class Action:
    """A named sequence of steps forming one automation task."""

    steps: tuple[Step, ...]
    timeout: float | None = None
    description: str | None = None
