"""Shared fixtures: a scriptable in-memory device."""

import threading
import time
from xml.sax.saxutils import quoteattr

import pytest

from droidact.core.config import DroidactConfig, PollingConfig, RetryConfig
from droidact.core.errors import DeviceUnreachableError


def build_xml(*nodes: dict) -> str:
    """Build a uiautomator dump with one flat node per dict."""
    rendered = []
    for node in nodes:
        attrs = {
            "class": node.get("class_name", "android.widget.TextView"),
            "text": node.get("text", ""),
            "resource-id": node.get("resource_id", ""),
            "content-desc": node.get("content_desc", ""),
            "clickable": "true",
            "enabled": "true",
            "bounds": node.get("bounds", "[0,0][10,10]"),
        }
        rendered.append(
            "<node " + " ".join(f"{k}={quoteattr(v)}" for k, v in attrs.items()) + " />"
        )
    return (
        "<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>"
        '<hierarchy rotation="0">'
        '<node class="android.widget.FrameLayout" text="" resource-id="" '
        'content-desc="" bounds="[0,0][1080,2340]">'
        + "".join(rendered)
        + "</node></hierarchy>"
    )


ANR_XML = build_xml(
    {"text": "Garage isn't responding", "resource_id": "android:id/alertTitle",
     "bounds": "[100,800][980,900]"},
    {"text": "Close app", "resource_id": "android:id/aerr_close",
     "bounds": "[100,1000][980,1100]"},
    {"text": "Wait", "resource_id": "android:id/aerr_wait",
     "bounds": "[100,1200][980,1300]"},
)


class FakeDevice:
    """In-memory stand-in for DeviceController that records every call.

    ``screens`` are returned by successive dumps; the last one repeats.
    """

    def __init__(
        self,
        screens: list[str] | None = None,
        screen_on: bool = True,
        foreground: str | None = None,
        booted: bool = True,
        op_delay: float = 0.0,
    ):
        self.screens = list(screens or [build_xml()])
        self.screen_on = screen_on
        self.foreground = foreground
        self.booted = booted
        self.op_delay = op_delay
        self.fail_taps = 0
        self.unreachable = False
        self.calls: list[tuple] = []
        self.tap_gate: threading.Event | None = None
        self.tap_started = threading.Event()
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        if self.op_delay:
            time.sleep(self.op_delay)
        with self._lock:
            self.calls.append(call)

    def calls_named(self, name: str) -> list[tuple]:
        with self._lock:
            return [call for call in self.calls if call[0] == name]

    @property
    def taps(self) -> list[tuple[int, int]]:
        return [(call[1], call[2]) for call in self.calls_named("tap")]

    @property
    def keyevents(self) -> list:
        return [call[1] for call in self.calls_named("keyevent")]

    def wait_for_device(self, timeout: float = 30.0) -> None:
        self._record("wait_for_device", timeout)
        if self.unreachable:
            raise DeviceUnreachableError("device offline")

    def wait_for_boot_complete(self, timeout: float = 120.0, poll_interval: float = 1.0) -> None:
        self._record("wait_for_boot_complete", timeout)

    def get_property(self, key: str) -> str:
        self._record("get_property", key)
        return "1" if self.booted else ""

    def dump_hierarchy(self) -> str:
        self._record("dump")
        with self._lock:
            return self.screens.pop(0) if len(self.screens) > 1 else self.screens[0]

    def screenshot(self) -> bytes:
        self._record("screenshot")
        return b"\x89PNG\r\n\x1a\nfake"

    def tap(self, x: int, y: int) -> None:
        self.tap_started.set()
        if self.tap_gate is not None:
            self.tap_gate.wait(5)
        self._record("tap", x, y)
        if self.fail_taps:
            self.fail_taps -= 1
            raise DeviceUnreachableError("tap failed")

    def keyevent(self, code) -> None:
        self._record("keyevent", code)
        if code == 224:
            self.screen_on = True

    def input_text(self, text: str) -> None:
        self._record("input_text", text)

    def start_app(self, package: str, activity: str | None = None) -> None:
        self._record("start_app", package, activity)
        self.foreground = package

    def is_screen_on(self) -> bool:
        self._record("is_screen_on")
        return self.screen_on

    def foreground_package(self) -> str | None:
        self._record("foreground_package")
        return self.foreground


@pytest.fixture
def make_xml():
    """Factory for uiautomator dumps."""
    return build_xml


@pytest.fixture
def anr_xml():
    """Dump showing the system not-responding dialog."""
    return ANR_XML


@pytest.fixture
def fake_device():
    """Awake device showing an empty screen."""
    return FakeDevice()


@pytest.fixture
def device_factory():
    """FakeDevice class for tests that need custom screens or state."""
    return FakeDevice


@pytest.fixture
def fast_config(tmp_path):
    """Config with short polling intervals for quick tests."""
    return DroidactConfig(
        artifacts_dir=tmp_path / "artifacts",
        polling=PollingConfig(
            poll_interval=0.02,
            boot_poll_interval=0.01,
            snapshot_ttl=0.3,
            recovery_pause=0.01,
        ),
        retry=RetryConfig(delay=0.01, repeat_delay=0.0),
    )
