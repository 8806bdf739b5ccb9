"""Data models for droidact."""

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

__all__ = [
    "Action",
    "EnsureAppOpen",
    "EnsureDeviceReady",
    "InputText",
    "KeyEvent",
    "LaunchApp",
    "Repeat",
    "Retry",
    "Selector",
    "Sleep",
    "Step",
    "TapCoordinates",
    "TapSelector",
    "WaitForAnySelector",
    "WaitForSelector",
    "WaitForText",
    "WakeAndUnlock",
]
