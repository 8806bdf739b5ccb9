"""Detect and dismiss the system "not responding" dialog."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from droidact.core.ui_element_parser import UIElement, UIElementParser

if TYPE_CHECKING:
    from droidact.core.deadline import ExecutionContext
    from droidact.core.device_controller import DeviceController

logger = logging.getLogger("droidact.interstitial")

DIALOG_MARKERS = (
    "isn't responding",
    "is not responding",
    "application not responding",
)

DIALOG_RESOURCE_IDS = (
    "android:id/aerr_wait",
    "android:id/aerr_close",
)

# Preferred buttons in order. "Wait" keeps the stalled process alive.
DISMISS_BUTTONS = (
    ("android:id/aerr_wait", "wait"),
    ("android:id/aerr_close", "close app"),
    ("android:id/button1", "ok"),
)


class InterstitialWatchdog:
    """Dismiss the ANR interstitial so waits can continue unattended."""

    def __init__(self, device: DeviceController, parser: UIElementParser | None = None):
        self._device = device
        self._parser = parser or UIElementParser()
        self.dismissed_count = 0

    def is_dialog(self, elements: Sequence[UIElement]) -> bool:
        """Check whether the snapshot shows the ANR dialog."""
        for element in elements:
            if element.resource_id in DIALOG_RESOURCE_IDS:
                return True
            text = element.text.casefold()
            if any(marker in text for marker in DIALOG_MARKERS):
                return True
        return False

    def find_dismiss_button(self, elements: Sequence[UIElement]) -> UIElement | None:
        for resource_id, label in DISMISS_BUTTONS:
            for element in elements:
                if element.resource_id == resource_id:
                    return element
                if element.text.strip().casefold() == label:
                    return element
        return None

    def dismiss_if_present(
        self,
        elements: Sequence[UIElement],
        context: ExecutionContext | None = None,
    ) -> bool:
        """Tap the dialog's dismiss button if the dialog is on screen.

        Args:
            elements: Parsed snapshot to inspect
            context: Execution the tap belongs to; an abandoned one raises
                instead of tapping

        Returns:
            True if a dismiss tap was sent
        """
        if not self.is_dialog(elements):
            return False

        button = self.find_dismiss_button(elements)
        if button is None:
            logger.warning("Not-responding dialog detected but no dismiss button found")
            return False

        if context is not None:
            context.check()

        x, y = button.bounds.center()
        logger.warning(
            "Dismissing not-responding dialog via '%s' at (%d, %d)",
            button.text or button.resource_id, x, y,
        )
        self._device.tap(x, y)
        self.dismissed_count += 1
        return True

    def check(self, xml: str, context: ExecutionContext | None = None) -> bool:
        """Parse a dump and dismiss the dialog if present."""
        return self.dismiss_if_present(self._parser.parse(xml), context)
