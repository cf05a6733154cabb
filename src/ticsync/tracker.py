"""Local-first write path.

Every mutation lands in the ``ItemStore`` first and, when a remote backend
is configured, is recorded in the ``MutationQueue`` for the next push. A
purely local workspace has no queue and no manager; the tracker then is a
thin pass-through to the store.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .logging import get_logger
from .models import Comment, NewComment, QueueAction, QueueEntry, WorkItem, is_local_id
from .mutation_queue import MutationQueue
from .store import ItemStore
from .sync import SyncManager


class Tracker:
    def __init__(
        self,
        store: ItemStore,
        queue: MutationQueue | None = None,
        manager: SyncManager | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.manager = manager
        self._logger = get_logger()

    async def _record(self, action: QueueAction, item_id: str, comment: NewComment | None = None) -> None:
        if self.queue is None:
            return
        await self.queue.append(QueueEntry(action=action, item_id=item_id, comment_data=comment))
        if self.manager is not None:
            await self.manager.refresh_pending_count()

    # --- reads -----------------------------------------------------------
    async def list(self, iteration: str | None = None) -> list[WorkItem]:
        return await self.store.list(iteration)

    async def get(self, item_id: str) -> WorkItem:
        return await self.store.get(item_id)

    async def children(self, item_id: str) -> list[WorkItem]:
        await self.store.get(item_id)
        return await self.store.children(item_id)

    # --- writes ----------------------------------------------------------
    async def create(self, data: Mapping[str, Any]) -> WorkItem:
        item = await self.store.create(data)
        await self._record("create", item.id)
        return item

    async def update(self, item_id: str, partial: Mapping[str, Any]) -> WorkItem:
        item = await self.store.update(item_id, partial)
        await self._record("update", item_id)
        return item

    async def delete(self, item_id: str) -> None:
        """Delete locally (cascading references) and queue the remote delete.

        An item that never reached the remote has nothing to delete there:
        its pending entries are cancelled and no ``delete`` is queued.
        """
        touched = {i.id for i in await self.store.children(item_id)}
        touched.update(i.id for i in await self.store.dependents(item_id))
        await self.store.delete(item_id)
        if self.queue is None:
            return

        if is_local_id(item_id):
            dropped = await self.queue.drop_item(item_id)
            self._logger.info("cancelled pending entries for never-synced item", item_id=item_id, dropped=dropped)
        else:
            await self._record("delete", item_id)
        # The cascade rewrote parent/depends_on on these items.
        if self.store.capabilities.relationships:
            for other in sorted(touched):
                await self._record("update", other)
        if self.manager is not None:
            await self.manager.refresh_pending_count()

    async def add_comment(self, item_id: str, comment: NewComment) -> Comment:
        created = await self.store.add_comment(item_id, comment)
        await self._record("comment", item_id, NewComment(author=comment.author, body=created.body))
        return created

    async def set_current_iteration(self, name: str) -> None:
        await self.store.set_current_iteration(name)


__all__ = ["Tracker"]
