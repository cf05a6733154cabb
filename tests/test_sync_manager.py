"""SyncManager against the in-memory remote."""

from __future__ import annotations

import asyncio

import pytest

from ticsync.adapters import InMemoryAdapter
from ticsync.config import StoreConfig
from ticsync.errors import AdapterError
from ticsync.models import NewComment, QueueEntry, WorkItem
from ticsync.runtime import Workspace

STAMP = "2026-01-01T00:00:00+00:00"


def _workspace(root, adapter: InMemoryAdapter | None = None) -> Workspace:
    (root / ".tic").mkdir(exist_ok=True)
    return Workspace(root, StoreConfig(backend="github", github_repo="acme/widgets"), adapter=adapter or InMemoryAdapter(next_id=42))


async def _seed(ws: Workspace, *ids: str) -> None:
    assert isinstance(ws.adapter, InMemoryAdapter)
    for item_id in ids:
        item = WorkItem(id=item_id, title=f"Item {item_id}", status="open", created=STAMP, updated=STAMP)
        ws.adapter.seed(item)
        await ws.store.put(item)


@pytest.mark.asyncio
async def test_local_create_is_remapped_to_remote_id(tmp_path):
    ws = _workspace(tmp_path)
    parent = await ws.tracker.create({"title": "Parent"})
    assert parent.id == "local-1"
    assert [(e.action, e.item_id) for e in await ws.queue.read()] == [("create", "local-1")]

    child = await ws.tracker.create({"title": "Child", "parent": "local-1"})
    assert child.id == "local-2"

    result = await ws.manager.sync()

    assert result.push.pushed == 2
    assert result.push.failed == 0
    assert result.push.id_mappings == {"local-1": "42", "local-2": "43"}
    assert await ws.queue.read() == []
    assert (await ws.store.get("42")).title == "Parent"
    assert (await ws.store.get("43")).parent == "42"
    assert not await ws.store.exists("local-1")
    # The child's create already carried the remapped parent id.
    assert ws.adapter.items["43"].parent == "42"
    assert ws.manager.get_status().state == "idle"


@pytest.mark.asyncio
async def test_failure_on_one_entry_does_not_abort_the_pass(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await _seed(ws, "1", "2", "3")
    for item_id in ("1", "2", "3"):
        await ws.tracker.update(item_id, {"title": f"Edited {item_id}"})
    adapter.inject_failure("update_work_item", item_id="2", error=AdapterError("boom", status=500), times=None)

    result = await ws.manager.sync()

    assert result.push.pushed == 2
    assert result.push.failed == 1
    assert [(e.action, e.item_id) for e in await ws.queue.read()] == [("update", "2")]
    assert adapter.items["1"].title == "Edited 1"
    assert adapter.items["2"].title == "Item 2"
    assert adapter.items["3"].title == "Edited 3"

    status = ws.manager.get_status()
    assert status.state == "error"
    assert status.pending_count == 1
    assert len(status.errors) == 1
    assert status.errors[0].entry is not None
    assert status.errors[0].entry.item_id == "2"
    assert status.errors[0].category == "network"
    # The pull kept the unpushed local edit.
    assert (await ws.store.get("2")).title == "Edited 2"

    adapter.clear_failures()
    await ws.manager.sync()
    assert ws.manager.get_status().state == "idle"
    assert ws.manager.get_status().errors == []
    assert adapter.items["2"].title == "Edited 2"


@pytest.mark.asyncio
async def test_update_queued_after_create_targets_remote_id_in_same_pass(tmp_path):
    adapter = InMemoryAdapter(next_id=7)
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "Draft"})
    await ws.tracker.update("local-1", {"title": "Final"})

    push = await ws.manager.push_pending()

    assert push.pushed == 2
    assert ("update_work_item", "7") in adapter.calls
    assert adapter.items["7"].title == "Final"
    assert await ws.queue.read() == []


class _SlashIdAdapter(InMemoryAdapter):
    async def create_work_item(self, data):
        created = await super().create_work_item(data)
        return created.copy(id="acme/w#1")


@pytest.mark.asyncio
async def test_create_whose_remote_id_cannot_be_stored_stays_queued(tmp_path):
    ws = _workspace(tmp_path, _SlashIdAdapter())
    await ws.tracker.create({"title": "Odd id"})

    result = await ws.manager.sync()

    assert result.push.pushed == 0
    assert result.push.failed == 1
    assert result.push.id_mappings == {}
    assert [(e.action, e.item_id) for e in await ws.queue.read()] == [("create", "local-1")]
    assert await ws.store.exists("local-1")
    status = ws.manager.get_status()
    assert status.state == "error"
    assert status.pending_count == 1
    assert "acme/w#1" in status.errors[0].message


@pytest.mark.asyncio
async def test_entries_behind_a_failed_create_wait(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "Draft"})
    await ws.tracker.update("local-1", {"title": "Final"})
    adapter.inject_failure("create_work_item", times=None)

    push = await ws.manager.push_pending()

    assert push.pushed == 0
    assert push.failed == 1
    assert [(e.action, e.item_id) for e in await ws.queue.read()] == [("create", "local-1"), ("update", "local-1")]
    assert not any(call[0] == "update_work_item" for call in adapter.calls)


@pytest.mark.asyncio
async def test_unexpected_exceptions_become_sync_errors(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "x"})
    adapter.inject_failure("create_work_item", error=RuntimeError("kaput"))

    push = await ws.manager.push_pending()

    assert push.failed == 1
    assert push.errors[0].message == "kaput"
    assert push.errors[0].category == "generic"


@pytest.mark.asyncio
async def test_entry_for_missing_local_item_is_dropped(tmp_path):
    ws = _workspace(tmp_path)
    await ws.queue.append(QueueEntry(action="update", item_id="77"))

    push = await ws.manager.push_pending()

    assert (push.pushed, push.failed) == (0, 0)
    assert await ws.queue.read() == []


@pytest.mark.asyncio
async def test_comment_and_delete_are_pushed(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await _seed(ws, "5", "6")
    await ws.tracker.add_comment("5", NewComment(author="alice", body="hi"))
    await ws.tracker.delete("6")

    push = await ws.manager.push_pending()

    assert push.pushed == 2
    assert [c.body for c in adapter.items["5"].comments] == ["hi"]
    assert "6" not in adapter.items


@pytest.mark.asyncio
async def test_deleting_never_synced_item_never_contacts_remote(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "Oops"})
    await ws.tracker.add_comment("local-1", NewComment(author="a", body="b"))
    await ws.tracker.delete("local-1")

    assert await ws.queue.read() == []
    push = await ws.manager.push_pending()
    assert push.pushed == 0
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_pull_adopts_remote_state_and_prunes(tmp_path):
    adapter = InMemoryAdapter(statuses=["open", "closed"], iterations=["v1", "v2"], current_iteration="v2")
    ws = _workspace(tmp_path, adapter)
    await _seed(ws, "1")
    await ws.store.put(WorkItem(id="9", title="Deleted remotely", created=STAMP, updated=STAMP))
    adapter.seed(WorkItem(id="2", title="Created remotely", created=STAMP, updated=STAMP))
    adapter.inject_failure("create_work_item", times=None)
    await ws.tracker.create({"title": "Still offline"})

    result = await ws.manager.sync()

    ids = {i.id for i in await ws.store.list()}
    assert ids == {"1", "2", "local-1"}
    assert result.pull_count == 2
    assert ws.store.statuses() == ["open", "closed"]
    assert ws.store.iterations() == ["v1", "v2"]
    assert ws.store.current_iteration() == "v2"


@pytest.mark.asyncio
async def test_pull_keeps_local_comments_when_remote_list_has_none(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await _seed(ws, "1")
    await ws.store.add_comment("1", NewComment(author="a", body="kept"))

    await ws.manager.sync()

    assert [c.body for c in (await ws.store.get("1")).comments] == ["kept"]


@pytest.mark.asyncio
async def test_pull_failure_sets_error_but_keeps_push(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "x"})
    adapter.inject_failure("list_work_items", error=AdapterError("unavailable", status=503, transient=True))

    result = await ws.manager.sync()

    assert result.push.pushed == 1
    assert result.pull_error == "unavailable"
    status = ws.manager.get_status()
    assert status.state == "error"
    assert status.errors[-1].entry is None
    assert status.errors[-1].transient is True
    assert await ws.store.exists("1")


@pytest.mark.asyncio
async def test_concurrent_requests_coalesce_into_one_pass(tmp_path):
    adapter = InMemoryAdapter()
    ws = _workspace(tmp_path, adapter)
    await ws.tracker.create({"title": "x"})

    first, second = await asyncio.gather(ws.manager.sync(), ws.manager.sync())

    assert first is second
    assert [c for c in adapter.calls if c[0] == "create_work_item"] == [("create_work_item", None)]
    assert [c for c in adapter.calls if c[0] == "list_work_items"] == [("list_work_items", None)]


@pytest.mark.asyncio
async def test_status_observers_and_unsubscribe(tmp_path):
    ws = _workspace(tmp_path)
    await ws.tracker.create({"title": "x"})
    assert ws.manager.get_status().pending_count == 1

    seen: list[str] = []
    unsubscribe = ws.manager.on_status_change(lambda s: seen.append(s.state))
    await ws.manager.push_pending()
    assert seen == ["syncing", "idle"]
    assert ws.manager.get_status().last_sync_time is None
    assert ws.manager.get_status().pending_count == 0

    unsubscribe()
    await ws.manager.sync()
    assert seen == ["syncing", "idle"]
    assert ws.manager.get_status().last_sync_time is not None


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_the_pass(tmp_path):
    ws = _workspace(tmp_path)

    def _bad(_status):
        raise RuntimeError("listener bug")

    ws.manager.on_status_change(_bad)
    result = await ws.manager.sync()
    assert result.pull_error is None
    assert ws.manager.get_status().state == "idle"
