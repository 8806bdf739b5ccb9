"""Parse UI elements from uiautomator XML dumps."""

import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from droidact.core.errors import MalformedSnapshotError

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")
_HIERARCHY_RE = re.compile(r"<hierarchy[^>]*>.*</hierarchy>", re.DOTALL)


@dataclass(frozen=True)
class Bounds:
    """Element rectangle in screen pixels."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def parse(cls, bounds_str: str) -> "Bounds":
        """Parse bounds string like '[0,0][1080,2340]'.

        Raises:
            MalformedSnapshotError: If the string has any other shape
        """
        match = _BOUNDS_RE.fullmatch(bounds_str.strip())
        if not match:
            raise MalformedSnapshotError(f"Invalid bounds format: {bounds_str!r}")
        left, top, right, bottom = (int(g) for g in match.groups())
        return cls(left, top, right, bottom)

    def center(self) -> tuple[int, int]:
        """Midpoint of each axis, rounded half up."""
        x = math.floor((self.left + self.right) / 2 + 0.5)
        y = math.floor((self.top + self.bottom) / 2 + 0.5)
        return x, y


@dataclass(frozen=True)
class UIElement:
    """Parsed UI element from uiautomator dump."""

    class_name: str
    text: str
    resource_id: str
    content_desc: str
    bounds: Bounds
    clickable: bool = False
    enabled: bool = True


class UIElementParser:
    """Parse uiautomator XML dumps to a flat element list."""

    def parse(self, xml_string: str) -> list[UIElement]:
        """Parse XML string to list of UI elements.

        Every node with a non-empty ``bounds`` attribute becomes one element,
        in document (pre-order) order.

        Args:
            xml_string: Raw dump output, possibly with shell noise around it

        Returns:
            List of UIElement objects

        Raises:
            MalformedSnapshotError: If the XML or a bounds attribute is invalid
        """
        text = xml_string.replace("\x00", "")
        match = _HIERARCHY_RE.search(text)
        if match:
            text = match.group(0)

        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as e:
            raise MalformedSnapshotError(f"Invalid UI dump: {e}") from e

        elements: list[UIElement] = []
        self._parse_node(root, elements)
        return elements

    def _parse_node(self, node: ET.Element, elements: list[UIElement]) -> None:
        bounds_str = node.get("bounds")
        if bounds_str:
            elements.append(UIElement(
                class_name=node.get("class", ""),
                text=node.get("text", ""),
                resource_id=node.get("resource-id", ""),
                content_desc=node.get("content-desc", ""),
                bounds=Bounds.parse(bounds_str),
                clickable=node.get("clickable", "false") == "true",
                enabled=node.get("enabled", "true") == "true",
            ))

        for child in node:
            self._parse_node(child, elements)
