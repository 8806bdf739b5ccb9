"""Tests for DeviceController."""

import itertools
import subprocess
from unittest.mock import MagicMock, call, patch

import pytest

from droidact.core.device_controller import (
    DeviceController,
    escape_input_text,
    parse_screen_on,
    resolve_keycode,
)
from droidact.core.errors import DeadlineExceededError, DeviceUnreachableError


@pytest.fixture
def controller():
    """Create a DeviceController instance for testing."""
    return DeviceController("test-device-123")


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestAdbTransport:
    """Tests for the adb subprocess wrapper."""

    def test_targets_device_serial(self, controller):
        """Commands are scoped with -s <serial>."""
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.return_value = completed("ok\n")

            assert controller.shell(["echo", "ok"]) == "ok"

            cmd = mock_run.call_args[0][0]
            assert cmd == ["adb", "-s", "test-device-123", "shell", "echo", "ok"]
            assert mock_run.call_args[1]["timeout"] == 30.0

    def test_empty_serial_uses_default_device(self):
        """No -s flag when the serial is empty."""
        controller = DeviceController("", adb_path="/opt/adb")
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.return_value = completed("")

            controller.shell(["true"])

            assert mock_run.call_args[0][0] == ["/opt/adb", "shell", "true"]

    def test_timeout_raises_unreachable(self, controller):
        """A hung command surfaces as DeviceUnreachableError."""
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(cmd="adb", timeout=1)

            with pytest.raises(DeviceUnreachableError, match="timed out"):
                controller.shell(["sleep", "100"], timeout=1)

    def test_missing_adb_raises_unreachable(self, controller):
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("adb")

            with pytest.raises(DeviceUnreachableError, match="not available"):
                controller.shell(["true"])

    def test_nonzero_exit_raises_unreachable(self, controller):
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.return_value = completed(returncode=1, stderr="error: device offline\n")

            with pytest.raises(DeviceUnreachableError, match="device offline"):
                controller.shell(["true"])

    def test_capture_binary_returns_bytes(self, controller):
        """exec-out output is returned undecoded."""
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.return_value = completed(b"\x89PNG", stderr=b"")

            assert controller.screenshot() == b"\x89PNG"

            cmd = mock_run.call_args[0][0]
            assert cmd[3:] == ["exec-out", "screencap", "-p"]
            assert mock_run.call_args[1]["text"] is False
            assert mock_run.call_args[1]["timeout"] == 10.0


class TestInputCommands:
    """Tests for input commands."""

    def test_tap(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.tap(200, 225)

            mock_adb.assert_called_once_with(
                ["shell", "input", "tap", "200", "225"], timeout=None
            )

    def test_keyevent_by_name(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.keyevent("back")

            mock_adb.assert_called_once_with(
                ["shell", "input", "keyevent", "4"], timeout=None
            )

    def test_input_text_is_escaped(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.input_text("hi there!")

            mock_adb.assert_called_once_with(
                ["shell", "input", "text", "hi%sthere\\!"], timeout=None
            )

    def test_input_text_keeps_literal_percent_s(self, controller):
        """A typed "%s" is sent in two parts so it is not read as a space."""
        with patch.object(controller, "_adb") as mock_adb:
            controller.input_text("50%sale")

            assert [c[0][0] for c in mock_adb.call_args_list] == [
                ["shell", "input", "text", "50%"],
                ["shell", "input", "text", "sale"],
            ]

    def test_start_app_with_activity(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.start_app("com.chirp.access", ".MainActivity")

            mock_adb.assert_called_once_with(
                ["shell", "am", "start", "-n", "com.chirp.access/.MainActivity"], timeout=None
            )

    def test_start_app_without_activity_uses_launcher(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.start_app("com.chirp.access")

            args = mock_adb.call_args[0][0]
            assert args[:4] == ["shell", "monkey", "-p", "com.chirp.access"]
            assert "android.intent.category.LAUNCHER" in args

    def test_dump_hierarchy_reads_dump_file(self, controller):
        """uiautomator dump and cat run in one exec-out call."""
        with patch.object(controller, "_adb_bytes") as mock_bytes:
            mock_bytes.return_value = b"<hierarchy />"

            assert controller.dump_hierarchy() == "<hierarchy />"

            args = mock_bytes.call_args[0][0]
            assert args[:3] == ["exec-out", "sh", "-c"]
            assert "uiautomator dump /sdcard/window_dump.xml" in args[3]


class TestEscapeInputText:
    """Tests for escape_input_text."""

    @pytest.mark.parametrize(
        "raw,escaped",
        [
            ("plain", "plain"),
            ("a b", "a%sb"),
            ("a&b", "a\\&b"),
            ("(x)", "\\(x\\)"),
            ("<tag>", "\\<tag\\>"),
            ("why?", "why\\?"),
            ("back\\slash", "back\\\\slash"),
            ("it's", "it\\'s"),
            ('say "hi"', 'say%s\\"hi\\"'),
            ("a;b|c", "a\\;b\\|c"),
            ("$HOME `id`", "\\$HOME%s\\`id\\`"),
        ],
    )
    def test_escapes(self, raw, escaped):
        assert escape_input_text(raw) == escaped


class TestResolveKeycode:
    """Tests for resolve_keycode."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            (3, "3"),
            ("66", "66"),
            ("HOME", "3"),
            ("enter", "66"),
            ("KEYCODE_CAMERA", "KEYCODE_CAMERA"),
        ],
    )
    def test_resolves(self, code, expected):
        assert resolve_keycode(code) == expected

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown keycode"):
            resolve_keycode("LAUNCH_ROCKETS")


class TestScreenState:
    """Tests for screen-on detection."""

    @pytest.mark.parametrize(
        "dump,expected",
        [
            ("  mWakefulness=Awake\n", True),
            ("  mWakefulness=Asleep\n", False),
            ("  mWakefulness=Dozing\n", False),
            ("Display Power: state=ON\n", True),
            ("Display Power: state=OFF\n", False),
            ("mScreenOn=true\n", True),
            ("mScreenOn=false\n", False),
            ("nothing useful\n", False),
        ],
    )
    def test_parse_screen_on(self, dump, expected):
        assert parse_screen_on(dump) is expected

    def test_is_screen_on_queries_power(self, controller):
        with patch.object(controller, "shell", return_value="mWakefulness=Awake") as mock_shell:
            assert controller.is_screen_on() is True
            mock_shell.assert_called_once_with(["dumpsys", "power"])


class TestForegroundPackage:
    """Tests for foreground_package."""

    def test_current_focus(self, controller):
        window = (
            "  mCurrentFocus=Window{1a2b3c u0 com.android.launcher3/"
            "com.android.launcher3.Launcher}\n"
            "  mCurrentFocus=Window{4d5e6f u0 com.chirp.access/com.chirp.access.MainActivity}\n"
        )
        with patch.object(controller, "shell", return_value=window):
            assert controller.foreground_package() == "com.chirp.access"

    def test_falls_back_to_activity_dump(self, controller):
        """Activity dump is consulted once the window dump has no match."""
        activity = (
            "  topResumedActivity=ActivityRecord{9f8e7d u0 "
            "com.chirp.access/.MainActivity t42}\n"
        )
        with patch.object(controller, "shell", side_effect=["no focus", activity]) as mock_shell:
            assert controller.foreground_package() == "com.chirp.access"

            assert mock_shell.call_args_list == [
                call(["dumpsys", "window", "windows"]),
                call(["dumpsys", "activity", "activities"]),
            ]

    def test_resumed_activity(self, controller):
        activity = "    mResumedActivity: ActivityRecord{abc u0 com.example.app/.Home t7}\n"
        with patch.object(controller, "shell", side_effect=["", activity]):
            assert controller.foreground_package() == "com.example.app"

    def test_unknown(self, controller):
        with patch.object(controller, "shell", side_effect=["", ""]):
            assert controller.foreground_package() is None


class TestBootAndReadiness:
    """Tests for boot and connectivity checks."""

    def test_wait_for_device(self, controller):
        with patch.object(controller, "_adb") as mock_adb:
            controller.wait_for_device(5)

            mock_adb.assert_called_once_with(["wait-for-device"], timeout=5)

    def test_boot_complete_polls_until_set(self, controller):
        with patch.object(controller, "get_property", side_effect=["", "0", "1"]) as mock_prop, \
             patch("droidact.core.device_controller.time.sleep") as mock_sleep:
            controller.wait_for_boot_complete(timeout=10, poll_interval=0.5)

            assert mock_prop.call_count == 3
            mock_sleep.assert_called_with(0.5)

    def test_boot_complete_times_out(self, controller):
        ticks = itertools.count(0, 6)
        with patch.object(controller, "get_property", return_value=""), \
             patch("droidact.core.device_controller.time.sleep"), \
             patch("droidact.core.device_controller.time.monotonic", side_effect=lambda: next(ticks)):
            with pytest.raises(DeadlineExceededError, match="did not finish booting"):
                controller.wait_for_boot_complete(timeout=10)


class TestListDevices:
    """Tests for list_devices."""

    def test_parses_devices_output(self):
        output = (
            "List of devices attached\n"
            "emulator-5554          device product:sdk_gphone64 model:sdk_gphone64_x86_64 "
            "device:emu64x\n"
            "R58M12ABCDE            unauthorized\n"
        )
        with patch("droidact.core.device_controller.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(stdout=output)

            devices = DeviceController.list_devices()

        assert devices == [
            {"id": "emulator-5554", "name": "sdk gphone64 x86 64", "status": "device"},
            {"id": "R58M12ABCDE", "name": "unknown", "status": "unauthorized"},
        ]
