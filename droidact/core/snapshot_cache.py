"""Short-lived cache of the last accessibility dump."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from droidact.core.device_controller import DeviceController

logger = logging.getLogger("droidact.snapshot")

DEFAULT_TTL = 0.3


@dataclass(frozen=True)
class CacheEntry:
    xml: str
    captured_at: float


class SnapshotCache:
    """Cache the UI dump for a few hundred milliseconds.

    Executions are serialized, so the cache is never shared between two
    running actions and needs no locking. Anything that may change the
    screen must call :meth:`invalidate`.
    """

    def __init__(
        self,
        device: DeviceController,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._device = device
        self._ttl = ttl
        self._clock = clock
        self._entry: CacheEntry | None = None

    @property
    def entry(self) -> CacheEntry | None:
        return self._entry

    def get(self) -> str:
        """Return the cached dump if still fresh, otherwise dump again."""
        now = self._clock()
        if self._entry is not None and now - self._entry.captured_at < self._ttl:
            return self._entry.xml

        xml = self._device.dump_hierarchy()
        self._entry = CacheEntry(xml=xml, captured_at=self._clock())
        logger.debug("UI dump refreshed (%d bytes)", len(xml))
        return xml

    def invalidate(self) -> None:
        self._entry = None
