"""Parent / dependency graph checks over a snapshot of the store.

Both walks carry a visited set so a corrupted store (an existing cycle
written by hand) terminates instead of looping.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import WorkItem


class RelationGraph:
    def __init__(self, items: Iterable[WorkItem]) -> None:
        self._parent: dict[str, str | None] = {}
        self._depends: dict[str, list[str]] = {}
        for item in items:
            self._parent[item.id] = item.parent
            self._depends[item.id] = list(item.depends_on)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._parent

    def parent_chain_contains(self, start: str, target: str) -> bool:
        """Walk parent pointers from ``start``; True if ``target`` is met."""
        current: str | None = start
        visited: set[str] = set()
        while current is not None:
            if current == target:
                return True
            if current in visited:
                break
            visited.add(current)
            current = self._parent.get(current)
        return False

    def depends_reaches(self, start: str, target: str) -> bool:
        """Depth-first search along ``depends_on`` edges from ``start``."""
        visited: set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._depends.get(current, ()))
        return False


__all__ = ["RelationGraph"]
