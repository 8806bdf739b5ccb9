"""Failure artifact capture for offline debugging."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from droidact.core.device_controller import DeviceController

logger = logging.getLogger("droidact.artifacts")


def safe_timestamp(moment: datetime | None = None) -> str:
    """ISO timestamp with ':' and '.' replaced so it is safe in filenames."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat().replace(":", "-").replace(".", "-")


def comment_safe(text: str) -> str:
    """Break up "--" runs, which are not allowed inside an XML comment."""
    return re.sub(r"-(?=-|$)", "- ", text)


class ArtifactCapturer:
    """Save a screenshot and UI dump pair when an action fails."""

    def __init__(self, device: DeviceController, output_dir: Path):
        """Initialize capturer.

        Args:
            device: Device to capture from
            output_dir: Directory to write artifacts to
        """
        self._device = device
        self._output_dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def get_basename(self, action_id: str, moment: datetime | None = None) -> str:
        """Generate base filename like "open_garage-2026-01-17T14-30-25-123456+00-00"."""
        return f"{action_id}-{safe_timestamp(moment)}"

    def capture(self, action_id: str, reason: str) -> tuple[Path, Path] | None:
        """Capture screenshot and UI dump, best effort.

        Failures are logged and swallowed so they never mask the error
        that triggered the capture.

        Returns:
            (png_path, xml_path) or None if capture failed
        """
        base = self.get_basename(action_id)
        try:
            screenshot = self._device.screenshot()
            xml = self._device.dump_hierarchy()

            self._output_dir.mkdir(parents=True, exist_ok=True)
            png_path = self._output_dir / f"{base}.png"
            xml_path = self._output_dir / f"{base}.xml"
            png_path.write_bytes(screenshot)
            comment = comment_safe(reason)
            xml_path.write_text(f"<!-- {comment} -->\n{xml}", encoding="utf-8")
        except Exception as e:
            logger.warning("Artifact capture failed for %s: %s", action_id, e)
            return None

        logger.info("Saved failure artifacts: %s.{png,xml}", self._output_dir / base)
        return png_path, xml_path
