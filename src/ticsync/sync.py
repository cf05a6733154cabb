"""Push/pull orchestration between the local store and one remote.

A pass drains the mutation queue in order, one entry at a time:

- ``create`` pushes the item's current snapshot; when the remote answers
  with a different id the item is renamed in the store (references
  included) and its remaining queue entries are retargeted before the next
  entry runs, so a later ``update`` in the same pass already hits the
  remote id.
- ``update`` pushes the current snapshot, ``comment`` the queued comment,
  ``delete`` the id.

A failing entry is recorded as a ``SyncError`` and left queued; the pass
moves on. ``sync`` then pulls the remote's items and vocabulary into the
store. Nothing an adapter raises escapes a pass.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from .adapters.base import RemoteAdapter
from .errors import NotFoundError, classify_error
from .logging import get_logger
from .models import (
    PushResult,
    QueueEntry,
    SyncError,
    SyncResult,
    SyncStatus,
    WorkItem,
    is_local_id,
    utc_now,
)
from .mutation_queue import MutationQueue
from .store import ItemStore

StatusListener = Callable[[SyncStatus], None]


class _Unrecoverable(Exception):
    """The entry can never succeed; drop it instead of retrying."""


class SyncManager:
    def __init__(self, store: ItemStore, queue: MutationQueue, adapter: RemoteAdapter) -> None:
        self.store = store
        self.queue = queue
        self.adapter = adapter
        self._status = SyncStatus()
        self._listeners: list[StatusListener] = []
        self._inflight: asyncio.Future[SyncResult] | None = None
        self._logger = get_logger()

    # --- status ----------------------------------------------------------
    def get_status(self) -> SyncStatus:
        return replace(self._status, errors=list(self._status.errors))

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to status transitions; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set_status(self, **changes: Any) -> None:
        self._status = replace(self._status, **changes)
        snapshot = self.get_status()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning("status listener failed", error=str(exc))

    async def refresh_pending_count(self) -> int:
        count = await self.queue.pending_count()
        if count != self._status.pending_count:
            self._set_status(pending_count=count)
        return count

    # --- entry points ----------------------------------------------------
    async def push_pending(self) -> PushResult:
        """Drain the queue without pulling."""
        result = await self._exclusive(pull=False)
        return result.push

    async def sync(self) -> SyncResult:
        return await self._exclusive(pull=True)

    async def _exclusive(self, *, pull: bool) -> SyncResult:
        # A request arriving mid-pass joins the pass already running.
        if self._inflight is not None and not self._inflight.done():
            self._logger.debug("sync pass already running; joining it")
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._run_pass(pull=pull))
        return await asyncio.shield(self._inflight)

    async def _run_pass(self, *, pull: bool) -> SyncResult:
        self._set_status(state="syncing")
        operation = "sync" if pull else "push"
        try:
            with self._logger.timed_operation(operation):
                push = await self._push()
                result = SyncResult(push=push)
                pull_failure = await self._pull_into(result) if pull else None
        except Exception:
            self._set_status(state="error", pending_count=await self.queue.pending_count())
            raise

        errors = list(push.errors)
        if pull_failure is not None:
            errors.append(pull_failure)
        changes: dict[str, Any] = {
            "state": "error" if errors else "idle",
            "pending_count": await self.queue.pending_count(),
            "errors": errors,
        }
        if pull:
            changes["last_sync_time"] = utc_now()
        self._set_status(**changes)
        return result

    # --- push ------------------------------------------------------------
    async def _push(self) -> PushResult:
        result = PushResult()
        entries = await self.queue.read()
        self._logger.log_operation("push_start", pending=len(entries))
        for entry in entries:
            item_id = result.id_mappings.get(entry.item_id, entry.item_id)
            if entry.action != "create" and is_local_id(item_id) and await self.queue.has_pending(item_id, "create"):
                # Its create has not gone through yet; retry next pass.
                self._logger.debug("deferring entry until create is confirmed", action=entry.action, item_id=item_id)
                continue
            try:
                remote_id = await self._apply(entry, item_id)
                if remote_id is not None and remote_id != item_id:
                    # The create entry follows the item to its remote id.
                    await self._remap(item_id, remote_id)
            except _Unrecoverable as exc:
                await self.queue.remove(item_id, entry.action)
                self._logger.warning("entry_dropped", action=entry.action, item_id=item_id, error=str(exc))
                continue
            except Exception as exc:  # noqa: BLE001
                info = classify_error(exc)
                result.failed += 1
                result.errors.append(
                    SyncError(
                        entry=replace(entry, item_id=item_id),
                        message=info.message,
                        category=info.category,
                        transient=info.transient,
                    )
                )
                self._logger.log_error(
                    "entry_failed", error=info.message, action=entry.action, item_id=item_id, category=info.category
                )
                continue

            confirmed_id = item_id
            if remote_id is not None and remote_id != item_id:
                result.id_mappings[item_id] = remote_id
                confirmed_id = remote_id
            await self.queue.remove(confirmed_id, entry.action)
            result.pushed += 1
            self._logger.log_item_action(entry.action, item_id, remote_id=remote_id, event="entry_pushed")
        return result

    async def _local_item(self, item_id: str) -> WorkItem:
        try:
            return await self.store.get(item_id)
        except NotFoundError as exc:
            raise _Unrecoverable(f"local work item #{item_id} no longer exists") from exc

    async def _apply(self, entry: QueueEntry, item_id: str) -> str | None:
        if entry.action == "create":
            item = await self._local_item(item_id)
            created = await self.adapter.create_work_item(item.snapshot())
            return created.id
        if entry.action == "update":
            item = await self._local_item(item_id)
            await self.adapter.update_work_item(item_id, item.snapshot())
            return None
        if entry.action == "comment":
            if entry.comment_data is None:
                raise _Unrecoverable("comment entry carries no comment")
            await self.adapter.add_comment(item_id, entry.comment_data)
            return None
        await self.adapter.delete_work_item(item_id)
        return None

    async def _remap(self, local_id: str, remote_id: str) -> None:
        await self.store.rename(local_id, remote_id)
        await self.queue.rename_item(local_id, remote_id)
        self._logger.log_item_action("id_remapped", local_id, remote_id=remote_id)

    # --- pull ------------------------------------------------------------
    async def _pull_into(self, result: SyncResult) -> SyncError | None:
        start = time.perf_counter()
        try:
            result.pull_count = await self._pull()
        except Exception as exc:  # noqa: BLE001
            info = classify_error(exc)
            result.pull_error = info.message
            self._logger.log_error("pull failed", error=info.message, category=info.category)
            return SyncError(entry=None, message=info.message, category=info.category, transient=info.transient)
        self._logger.log_performance("pull", (time.perf_counter() - start) * 1000, items=result.pull_count)
        return None

    async def _pull(self) -> int:
        statuses = await self.adapter.get_statuses()
        iterations = await self.adapter.get_iterations()
        types = await self.adapter.get_work_item_types()
        current_iteration = await self.adapter.get_current_iteration()
        remote_items = await self.adapter.list_work_items()

        pending_ids = {e.item_id for e in await self.queue.read()}
        local = {i.id: i for i in await self.store.list()}
        remote_ids: set[str] = set()
        for item in remote_items:
            remote_ids.add(item.id)
            if item.id in pending_ids:
                # Unpushed local edits win until their entry goes through.
                continue
            existing = local.get(item.id)
            if existing is not None and not item.comments and existing.comments:
                # List endpoints do not carry comments; keep the ones we have.
                item = item.copy(comments=existing.comments)
            await self.store.put(item)

        for item_id in local:
            if item_id not in remote_ids and item_id not in pending_ids:
                await self.store.discard(item_id)
                self._logger.debug("pruned work item missing from remote", item_id=item_id)

        await self.store.sync_config(
            statuses=statuses or None,
            iterations=iterations or None,
            types=types or None,
            current_iteration=current_iteration or None,
        )
        return len(remote_items)


__all__ = ["StatusListener", "SyncManager"]
