from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import AdapterError, NotFoundError
from ..models import (
    WRITABLE_FIELDS,
    Capabilities,
    Comment,
    NewComment,
    WorkItem,
    utc_now,
)


@dataclass
class _Failure:
    method: str
    item_id: str | None
    error: Exception
    remaining: int | None


class InMemoryAdapter:
    """Deterministic remote kept in a dict.

    Remote ids are sequential integers starting at ``next_id``. Failures can
    be injected per method (and optionally per item id) to exercise the
    sync manager's per-entry error handling. Every call is recorded in
    ``calls`` as ``(method, item_id)``.
    """

    name = "memory"

    def __init__(
        self,
        *,
        capabilities: Capabilities | None = None,
        next_id: int = 1,
        statuses: list[str] | None = None,
        iterations: list[str] | None = None,
        types: list[str] | None = None,
        assignees: list[str] | None = None,
        current_iteration: str = "",
    ) -> None:
        self.capabilities = capabilities or Capabilities()
        self.items: dict[str, WorkItem] = {}
        self.calls: list[tuple[str, str | None]] = []
        self._next_id = next_id
        self._statuses = list(statuses or ["open", "closed"])
        self._iterations = list(iterations or [])
        self._types = list(types or ["issue"])
        self._assignees = list(assignees or [])
        self._current_iteration = current_iteration
        self._failures: list[_Failure] = []

    # --- test hooks ------------------------------------------------------
    def inject_failure(
        self,
        method: str,
        item_id: str | None = None,
        error: Exception | None = None,
        times: int | None = 1,
    ) -> None:
        """Make ``method`` raise ``error``; ``times=None`` fails forever."""
        self._failures.append(
            _Failure(method, item_id, error or AdapterError(f"{method} failed"), times)
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def seed(self, item: WorkItem) -> None:
        self.items[item.id] = item.copy()

    def _record(self, method: str, item_id: str | None = None) -> None:
        self.calls.append((method, item_id))
        for failure in self._failures:
            if failure.method != method:
                continue
            if failure.item_id is not None and failure.item_id != item_id:
                continue
            if failure.remaining is not None:
                failure.remaining -= 1
                if failure.remaining <= 0:
                    self._failures.remove(failure)
            raise failure.error

    def _require(self, item_id: str) -> WorkItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(item_id)
        return item

    # --- RemoteAdapter ---------------------------------------------------
    def get_capabilities(self) -> Capabilities:
        return self.capabilities

    async def get_statuses(self) -> list[str]:
        self._record("get_statuses")
        return list(self._statuses)

    async def get_iterations(self) -> list[str]:
        self._record("get_iterations")
        return list(self._iterations)

    async def get_work_item_types(self) -> list[str]:
        self._record("get_work_item_types")
        return list(self._types)

    async def get_assignees(self) -> list[str]:
        self._record("get_assignees")
        return list(self._assignees)

    async def get_current_iteration(self) -> str:
        self._record("get_current_iteration")
        return self._current_iteration

    async def list_work_items(self, iteration: str | None = None) -> list[WorkItem]:
        self._record("list_work_items")
        items = [i.copy() for i in self.items.values()]
        if iteration:
            items = [i for i in items if i.iteration == iteration]
        return items

    async def get_work_item(self, item_id: str) -> WorkItem:
        self._record("get_work_item", item_id)
        return self._require(item_id).copy()

    async def create_work_item(self, data: Mapping[str, Any]) -> WorkItem:
        self._record("create_work_item")
        item_id = str(self._next_id)
        self._next_id += 1
        now = utc_now()
        fields = {k: v for k, v in data.items() if k in WRITABLE_FIELDS}
        item = WorkItem.from_dict({**fields, "id": item_id, "created": now, "updated": now})
        self.items[item_id] = item
        return item.copy()

    async def update_work_item(self, item_id: str, partial: Mapping[str, Any]) -> WorkItem:
        self._record("update_work_item", item_id)
        current = self._require(item_id)
        fields = {k: v for k, v in partial.items() if k in WRITABLE_FIELDS}
        updated = WorkItem.from_dict({**current.to_dict(), **fields, "id": item_id, "updated": utc_now()})
        self.items[item_id] = updated
        return updated.copy()

    async def delete_work_item(self, item_id: str) -> None:
        self._record("delete_work_item", item_id)
        self._require(item_id)
        del self.items[item_id]

    async def add_comment(self, item_id: str, comment: NewComment) -> Comment:
        self._record("add_comment", item_id)
        item = self._require(item_id)
        new_comment = Comment(author=comment.author, date=utc_now(), body=comment.body)
        item.comments.append(new_comment)
        return new_comment


__all__ = ["InMemoryAdapter"]
