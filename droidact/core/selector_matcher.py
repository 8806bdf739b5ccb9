"""Match selectors against parsed UI elements."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from droidact.core.ui_element_parser import Bounds, UIElement
from droidact.models.action import Selector


def matches(element: UIElement, selector: Selector) -> bool:
    """Check whether an element satisfies every field set on the selector."""
    if selector.text and element.text != selector.text:
        return False
    if selector.text_contains and selector.text_contains not in element.text:
        return False
    if selector.resource_id and element.resource_id != selector.resource_id:
        return False
    if (
        selector.resource_id_contains
        and selector.resource_id_contains not in element.resource_id
    ):
        return False
    if selector.content_desc and element.content_desc != selector.content_desc:
        return False
    if (
        selector.content_desc_contains
        and selector.content_desc_contains not in element.content_desc
    ):
        return False
    return True


def match_first(
    elements: Iterable[UIElement],
    selectors: Sequence[Selector],
) -> tuple[Selector, Bounds] | None:
    """Find the first element, in document order, matching any selector.

    Elements are the outer loop and selectors the inner one, so an earlier
    element always wins over a higher-priority selector further down.

    Returns:
        (selector, bounds) of the first match, or None
    """
    if not selectors:
        return None

    for element in elements:
        for selector in selectors:
            if matches(element, selector):
                return selector, element.bounds

    return None
