"""Contract between the sync manager and one remote system of record.

The manager only ever talks to this surface; whether an adapter shells
out, speaks HTTP or keeps everything in memory is its own business. Each
adapter carries its ``Capabilities`` from construction so the local store
can reject writes the remote could never represent.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from ..models import Capabilities, Comment, FieldCapabilities, NewComment, WorkItem

GITHUB_CAPABILITIES = Capabilities(
    relationships=False,
    custom_types=False,
    custom_statuses=False,
    iterations=True,
    comments=True,
    fields=FieldCapabilities(
        priority=False,
        assignee=True,
        labels=True,
        parent=False,
        depends_on=False,
    ),
)


@runtime_checkable
class RemoteAdapter(Protocol):
    name: str
    capabilities: Capabilities

    def get_capabilities(self) -> Capabilities: ...

    async def get_statuses(self) -> list[str]: ...

    async def get_iterations(self) -> list[str]: ...

    async def get_work_item_types(self) -> list[str]: ...

    async def get_assignees(self) -> list[str]: ...

    async def get_current_iteration(self) -> str: ...

    async def list_work_items(self, iteration: str | None = None) -> list[WorkItem]: ...

    async def get_work_item(self, item_id: str) -> WorkItem: ...

    async def create_work_item(self, data: Mapping[str, Any]) -> WorkItem: ...

    async def update_work_item(self, item_id: str, partial: Mapping[str, Any]) -> WorkItem: ...

    async def delete_work_item(self, item_id: str) -> None: ...

    async def add_comment(self, item_id: str, comment: NewComment) -> Comment: ...


__all__ = ["GITHUB_CAPABILITIES", "RemoteAdapter"]
