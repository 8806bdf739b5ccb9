"""Tests for ArtifactCapturer."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from droidact.core.artifacts import ArtifactCapturer, comment_safe, safe_timestamp


class TestSafeTimestamp:
    """Tests for filename-safe timestamps."""

    def test_replaces_colons_and_dots(self):
        moment = datetime(2026, 1, 17, 14, 30, 25, 123456, tzinfo=timezone.utc)

        assert safe_timestamp(moment) == "2026-01-17T14-30-25-123456+00-00"


class TestArtifactCapturer:
    """Tests for failure artifact capture."""

    @pytest.fixture
    def device(self):
        device = MagicMock()
        device.screenshot.return_value = b"\x89PNG"
        device.dump_hierarchy.return_value = "<hierarchy />"
        return device

    @pytest.fixture
    def capturer(self, device, tmp_path):
        return ArtifactCapturer(device, tmp_path / "artifacts")

    def test_basename(self, capturer):
        moment = datetime(2026, 1, 17, 14, 30, 25, 123456, tzinfo=timezone.utc)

        assert capturer.get_basename("open_garage", moment) == (
            "open_garage-2026-01-17T14-30-25-123456+00-00"
        )

    def test_writes_pair(self, capturer):
        """Screenshot and annotated dump share a basename."""
        png_path, xml_path = capturer.capture("open_garage", "Selector not found")

        assert png_path.read_bytes() == b"\x89PNG"
        assert xml_path.read_text() == "<!-- Selector not found -->\n<hierarchy />"
        assert png_path.stem == xml_path.stem
        assert png_path.name.startswith("open_garage-")

    def test_creates_output_dir(self, capturer, tmp_path):
        capturer.capture("a", "boom")

        assert (tmp_path / "artifacts").is_dir()

    def test_reason_cannot_break_comment(self, capturer):
        _, xml_path = capturer.capture("a", "bad -- reason")

        assert xml_path.read_text().startswith("<!-- bad - - reason -->")

    @pytest.mark.parametrize("reason", ["a---b", "ends with -", "--", "-"])
    def test_no_double_dash_survives(self, reason):
        comment = f"<!-- {comment_safe(reason)} -->"

        assert "--" not in comment[4:-3]
        assert not comment[4:-3].endswith("-")

    def test_capture_failure_is_swallowed(self, capturer, device, tmp_path):
        """A failing device yields None and writes nothing."""
        device.screenshot.side_effect = RuntimeError("device gone")

        assert capturer.capture("a", "boom") is None
        assert not (tmp_path / "artifacts").exists()
