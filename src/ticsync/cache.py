from __future__ import annotations

import time
from collections.abc import Callable

from .models import WorkItem

_ALL = object()


class ItemCache:
    """Read-through cache for ``ItemStore.list``.

    Entries are keyed by iteration filter (or "all"). A positive ``ttl``
    expires every entry that many seconds after the first fill; ``0`` keeps
    entries until ``invalidate`` is called.
    """

    def __init__(self, ttl: float = 0.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[object, list[WorkItem]] = {}
        self._filled_at: float | None = None

    def get(self, iteration: str | None = None) -> list[WorkItem] | None:
        if self._ttl > 0 and self._filled_at is not None and self._clock() - self._filled_at > self._ttl:
            self.invalidate()
            return None
        cached = self._entries.get(_ALL if iteration is None else iteration)
        if cached is None:
            return None
        return [item.copy() for item in cached]

    def set(self, items: list[WorkItem], iteration: str | None = None) -> None:
        self._entries[_ALL if iteration is None else iteration] = [item.copy() for item in items]
        if self._filled_at is None:
            self._filled_at = self._clock()

    def invalidate(self) -> None:
        self._entries.clear()
        self._filled_at = None


__all__ = ["ItemCache"]
