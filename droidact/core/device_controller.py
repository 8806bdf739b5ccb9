"""Device interaction via adb."""

import logging
import re
import subprocess
import time

from droidact.core.errors import DeadlineExceededError, DeviceUnreachableError

logger = logging.getLogger("droidact.device")

DEFAULT_COMMAND_TIMEOUT = 30.0
UI_DUMP_PATH = "/sdcard/window_dump.xml"

KEYCODES = {
    "HOME": 3,
    "BACK": 4,
    "VOLUME_UP": 24,
    "VOLUME_DOWN": 25,
    "POWER": 26,
    "TAB": 61,
    "ENTER": 66,
    "DEL": 67,
    "MENU": 82,
    "ESCAPE": 111,
    "APP_SWITCH": 187,
    "SLEEP": 223,
    "WAKEUP": 224,
}

# Characters the device shell would otherwise interpret in `input text`
_SHELL_ESCAPES = {
    "\\": "\\\\",
    " ": "%s",
    "&": "\\&",
    "(": "\\(",
    ")": "\\)",
    "<": "\\<",
    ">": "\\>",
    "?": "\\?",
    "!": "\\!",
    "'": "\\'",
    "\"": "\\\"",
    ";": "\\;",
    "|": "\\|",
    "$": "\\$",
    "`": "\\`",
}

# `input text` turns a literal "%s" into a space; split between "%" and "s"
_PERCENT_S_BOUNDARY = re.compile(r"(?<=%)(?=s)")

_COMPONENT = r"([\w.]+)/[\w.$]+"

# Foreground resolution order; the last matching line of each source wins.
_FOREGROUND_SOURCES = (
    ("window", re.compile(rf"mCurrentFocus=Window\{{.*?\s{_COMPONENT}\}}")),
    ("window", re.compile(rf"mFocusedApp=.*?ActivityRecord\{{.*?\s{_COMPONENT}")),
    ("activity", re.compile(rf"topResumedActivity=ActivityRecord\{{.*?\s{_COMPONENT}")),
    ("activity", re.compile(rf"\b(?:mResumedActivity|ResumedActivity):.*?\s{_COMPONENT}")),
    ("activity", re.compile(rf"mFocusedActivity:.*?\s{_COMPONENT}")),
)

_DUMPSYS_COMMANDS = {
    "window": ["dumpsys", "window", "windows"],
    "activity": ["dumpsys", "activity", "activities"],
}


def escape_input_text(text: str) -> str:
    """Escape text so `input text` reproduces it literally."""
    return "".join(_SHELL_ESCAPES.get(ch, ch) for ch in text)


def resolve_keycode(code: int | str) -> str:
    """Normalize a key code or key name to an `input keyevent` argument.

    Raises:
        ValueError: If the name is not a known key
    """
    if isinstance(code, bool):
        raise ValueError(f"Unknown keycode: {code}")
    if isinstance(code, int):
        return str(code)

    name = code.strip().upper()
    if name.isdigit():
        return name
    if name.startswith("KEYCODE_"):
        return name
    if name in KEYCODES:
        return str(KEYCODES[name])
    raise ValueError(f"Unknown keycode: {code}")


def parse_screen_on(power_dump: str) -> bool:
    """Read screen state from `dumpsys power` output.

    Different Android versions report this differently; unknown output is
    treated as off.
    """
    wakefulness = re.search(r"mWakefulness=(\w+)", power_dump)
    if wakefulness:
        return wakefulness.group(1) == "Awake"

    display = re.search(r"Display Power: state=(\w+)", power_dump)
    if display:
        return display.group(1) == "ON"

    screen = re.search(r"mScreenOn=(\w+)", power_dump)
    if screen:
        return screen.group(1) == "true"

    return False


def last_match(pattern: re.Pattern, text: str) -> str | None:
    """Return group 1 of the last line matching pattern."""
    found = None
    for line in text.splitlines():
        match = pattern.search(line)
        if match:
            found = match.group(1)
    return found


class DeviceController:
    """Device interaction via adb commands."""

    def __init__(
        self,
        device_id: str,
        adb_path: str = "adb",
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        ui_dump_timeout: float = 10.0,
        screenshot_timeout: float = 10.0,
    ):
        """Initialize controller for a specific device.

        Args:
            device_id: ADB device identifier (empty string for the default device)
            adb_path: Path to the adb executable
            command_timeout: Default timeout for shell commands in seconds
            ui_dump_timeout: Timeout for uiautomator dumps
            screenshot_timeout: Timeout for screen captures
        """
        self._device_id = device_id
        self._adb_path = adb_path
        self._command_timeout = command_timeout
        self._ui_dump_timeout = ui_dump_timeout
        self._screenshot_timeout = screenshot_timeout

    @property
    def device_id(self) -> str:
        return self._device_id

    @staticmethod
    def list_devices(adb_path: str = "adb") -> list[dict[str, str]]:
        """List connected Android devices.

        Returns:
            List of device dicts with id, name, status
        """
        try:
            result = subprocess.run(
                [adb_path, "devices", "-l"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DeviceUnreachableError(f"adb devices failed: {e}") from e

        devices = []
        for line in result.stdout.strip().split("\n")[1:]:  # Skip header
            if not line.strip():
                continue

            parts = line.split()
            if len(parts) >= 2:
                name = "unknown"
                model_match = re.search(r"model:(\S+)", line)
                if model_match:
                    name = model_match.group(1).replace("_", " ")

                devices.append({
                    "id": parts[0],
                    "name": name,
                    "status": parts[1],
                })

        return devices

    def wait_for_device(self, timeout: float = 30.0) -> None:
        """Block until adb sees the device."""
        self._adb(["wait-for-device"], timeout=timeout)

    def get_property(self, key: str) -> str:
        """Read a system property via getprop."""
        return self.shell(["getprop", key])

    def wait_for_boot_complete(
        self, timeout: float = 120.0, poll_interval: float = 1.0
    ) -> None:
        """Poll sys.boot_completed until it reports 1.

        Raises:
            DeadlineExceededError: If boot does not complete within timeout
        """
        start = time.monotonic()
        while time.monotonic() - start < timeout:
            if self.get_property("sys.boot_completed") == "1":
                logger.debug("Boot completed after %.2fs", time.monotonic() - start)
                return
            time.sleep(poll_interval)

        raise DeadlineExceededError(
            f"Device {self._device_id} did not finish booting within {timeout:.0f}s"
        )

    def shell(self, args: list[str], timeout: float | None = None) -> str:
        """Run a shell command on the device and return stripped stdout."""
        return self._adb(["shell", *args], timeout=timeout).strip()

    def capture_binary(self, args: list[str], timeout: float | None = None) -> bytes:
        """Run a command via exec-out and return raw stdout bytes."""
        return self._adb_bytes(["exec-out", *args], timeout=timeout)

    def screenshot(self) -> bytes:
        """Capture screenshot from device.

        Returns:
            PNG image bytes
        """
        return self.capture_binary(["screencap", "-p"], timeout=self._screenshot_timeout)

    def dump_hierarchy(self) -> str:
        """Dump the accessibility hierarchy as XML text."""
        output = self.capture_binary(
            ["sh", "-c", f"uiautomator dump {UI_DUMP_PATH} >/dev/null && cat {UI_DUMP_PATH}"],
            timeout=self._ui_dump_timeout,
        )
        return output.decode("utf-8", errors="replace")

    def tap(self, x: int, y: int) -> None:
        """Tap at coordinates.

        Args:
            x: X coordinate
            y: Y coordinate
        """
        self.shell(["input", "tap", str(x), str(y)])

    def keyevent(self, code: int | str) -> None:
        """Send one key event.

        Args:
            code: Numeric key code or key name (HOME, BACK, KEYCODE_ENTER, ...)
        """
        self.shell(["input", "keyevent", resolve_keycode(code)])

    def input_text(self, text: str) -> None:
        """Type text into focused field.

        Args:
            text: Literal text to type
        """
        for chunk in _PERCENT_S_BOUNDARY.split(text):
            self.shell(["input", "text", escape_input_text(chunk)])

    def start_app(self, package: str, activity: str | None = None) -> None:
        """Start an app, directly by component or via its launcher intent.

        Args:
            package: App package name (e.g., com.example.app)
            activity: Optional activity name; relative names start with '.'
        """
        if activity:
            self.shell(["am", "start", "-n", f"{package}/{activity}"])
            return

        self.shell([
            "monkey", "-p", package,
            "-c", "android.intent.category.LAUNCHER", "1",
        ])

    def is_screen_on(self) -> bool:
        """Check whether the display is awake."""
        return parse_screen_on(self.shell(["dumpsys", "power"]))

    def foreground_package(self) -> str | None:
        """Resolve the package currently in the foreground.

        Tries the focused window, the focused app, the top resumed activity,
        the resumed activity and finally the focused activity. Each dumpsys
        source is fetched at most once.

        Returns:
            Package name or None if no source matched
        """
        dumps: dict[str, str] = {}
        for source, pattern in _FOREGROUND_SOURCES:
            if source not in dumps:
                dumps[source] = self.shell(_DUMPSYS_COMMANDS[source])
            package = last_match(pattern, dumps[source])
            if package:
                return package
        return None

    def _adb(self, args: list[str], timeout: float | None = None) -> str:
        """Execute adb command.

        Args:
            args: Command arguments (without 'adb -s device')
            timeout: Seconds before the command is abandoned

        Returns:
            Command stdout

        Raises:
            DeviceUnreachableError: On missing adb, non-zero exit or timeout
        """
        result = self._run(args, timeout, text=True)
        return result.stdout

    def _adb_bytes(self, args: list[str], timeout: float | None = None) -> bytes:
        result = self._run(args, timeout, text=False)
        return result.stdout

    def _run(
        self, args: list[str], timeout: float | None, text: bool
    ) -> subprocess.CompletedProcess:
        cmd = [self._adb_path]
        if self._device_id:
            cmd += ["-s", self._device_id]
        cmd += args
        timeout = timeout if timeout is not None else self._command_timeout

        try:
            result = subprocess.run(cmd, capture_output=True, text=text, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise DeviceUnreachableError(
                f"adb command timed out after {timeout:.1f}s: {' '.join(args)}"
            ) from e
        except OSError as e:
            raise DeviceUnreachableError(f"adb not available: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr if text else result.stderr.decode("utf-8", "replace")
            raise DeviceUnreachableError(f"adb command failed: {stderr.strip()}")

        return result
