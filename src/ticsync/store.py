"""File-backed work item store.

The store is the always-writable local source of truth. Every write goes
through two gates before anything touches disk:

1. field-capability validation against the active backend's
   ``Capabilities`` (a remote that cannot represent priorities must not
   receive an item with ``priority: high`` queued for it);
2. relationship validation: no self references, no dangling ids, no parent
   or dependency cycles.

Items are persisted one file per id under ``.tic/items``. ``list`` is served
through a read-through ``ItemCache`` that every successful mutation
invalidates.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .cache import ItemCache
from .config import TIC_DIR, StoreConfig, save_config
from .errors import (
    CycleDetectedError,
    DanglingReferenceError,
    NotFoundError,
    SelfReferenceError,
    UnsupportedFieldError,
    ValidationError,
)
from .graph import RelationGraph
from .logging import get_logger
from .models import (
    DEFAULT_PRIORITY,
    LOCAL_ID_PREFIX,
    PRIORITIES,
    WRITABLE_FIELDS,
    Capabilities,
    Comment,
    NewComment,
    WorkItem,
    unique_ordered,
    utc_now,
)
from .parser import ParseError, parse_item_file, render_item_file

ITEMS_DIR = "items"
LOCAL_CAPABILITIES = Capabilities()


def items_dir(root: Path) -> Path:
    return root / TIC_DIR / ITEMS_DIR


class ItemStore:
    def __init__(
        self,
        root: str | Path,
        config: StoreConfig,
        *,
        capabilities: Capabilities | None = None,
        backend_name: str = "local",
        temp_ids: bool = False,
        cache: ItemCache | None = None,
    ) -> None:
        self.root = Path(root)
        self.config = config
        self.capabilities = capabilities or LOCAL_CAPABILITIES
        self.backend_name = backend_name
        self.temp_ids = temp_ids
        self._cache = cache or ItemCache(ttl=config.cache_ttl_seconds)
        self._logger = get_logger()

    # --- files -----------------------------------------------------------
    def _item_path(self, item_id: str) -> Path:
        if not item_id or "/" in item_id or "\\" in item_id or item_id in (".", ".."):
            raise ValidationError(f"Invalid work item id: {item_id!r}")
        return items_dir(self.root) / f"{item_id}.md"

    def _write(self, item: WorkItem) -> None:
        path = self._item_path(item.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".md.tmp")
        tmp.write_text(render_item_file(item), encoding="utf-8")
        tmp.replace(path)

    def _unlink(self, item_id: str) -> None:
        self._item_path(item_id).unlink(missing_ok=True)

    def _read_all(self) -> list[WorkItem]:
        directory = items_dir(self.root)
        if not directory.is_dir():
            return []
        items: list[WorkItem] = []
        for path in sorted(directory.glob("*.md")):
            try:
                items.append(parse_item_file(path.read_text(encoding="utf-8")))
            except (OSError, ParseError) as exc:
                self._logger.warning("skipping unreadable work item file", path=str(path), error=str(exc))
        items.sort(key=lambda i: (i.created, i.id))
        return items

    def _save_config(self) -> None:
        save_config(self.root, self.config)

    # --- validation ------------------------------------------------------
    def _validate_fields(self, data: Mapping[str, Any]) -> None:
        unknown = sorted(set(data) - set(WRITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown work item field(s): {', '.join(unknown)}")
        priority = data.get("priority")
        if priority is not None and priority not in PRIORITIES:
            raise ValidationError(f"Invalid priority {priority!r}; expected one of {', '.join(PRIORITIES)}")

        caps = self.capabilities.fields
        backend = self.backend_name
        if not caps.priority and priority is not None and priority != DEFAULT_PRIORITY:
            raise UnsupportedFieldError("priority", backend)
        if not caps.assignee and data.get("assignee"):
            raise UnsupportedFieldError("assignee", backend)
        if not caps.labels and data.get("labels"):
            raise UnsupportedFieldError("labels", backend)
        if not caps.parent and data.get("parent") is not None:
            raise UnsupportedFieldError("parent", backend)
        if not caps.depends_on and data.get("depends_on"):
            raise UnsupportedFieldError("dependsOn", backend)

    def _validate_relationships(
        self,
        item_id: str,
        data: Mapping[str, Any],
        items: list[WorkItem],
    ) -> None:
        if "parent" not in data and "depends_on" not in data:
            return
        graph = RelationGraph(items)

        parent = data.get("parent")
        if parent is not None:
            if parent == item_id:
                raise SelfReferenceError(item_id, "parent")
            if parent not in graph:
                raise DanglingReferenceError(parent, "parent")
            if graph.parent_chain_contains(parent, item_id):
                raise CycleDetectedError(item_id, "parent")

        depends_on = data.get("depends_on")
        if depends_on:
            for dep in depends_on:
                if dep == item_id:
                    raise SelfReferenceError(item_id, "depends_on")
                if dep not in graph:
                    raise DanglingReferenceError(dep, "depends_on")
            # A cycle can enter through any single edge, so each one is checked.
            for dep in depends_on:
                if graph.depends_reaches(dep, item_id):
                    raise CycleDetectedError(item_id, "depends_on")

    @staticmethod
    def _normalize(data: Mapping[str, Any]) -> dict[str, Any]:
        out = dict(data)
        if "labels" in out:
            out["labels"] = unique_ordered(out["labels"] or [])
        if "depends_on" in out:
            out["depends_on"] = unique_ordered(out["depends_on"] or [])
        if "parent" in out:
            parent = out["parent"]
            out["parent"] = str(parent) if parent not in (None, "") else None
        return out

    # --- id minting ------------------------------------------------------
    def _next_free_id(self) -> tuple[str, int]:
        n = max(1, int(self.config.next_id))
        while True:
            candidate = f"{LOCAL_ID_PREFIX}{n}" if self.temp_ids else str(n)
            if not self._item_path(candidate).exists():
                return candidate, n
            n += 1

    def _register_iteration(self, iteration: str) -> bool:
        if iteration and iteration not in self.config.iterations:
            self.config.iterations.append(iteration)
            return True
        return False

    # --- CRUD ------------------------------------------------------------
    async def list(self, iteration: str | None = None) -> list[WorkItem]:
        cached = self._cache.get(iteration)
        if cached is not None:
            return cached
        items = self._read_all()
        if iteration:
            items = [i for i in items if i.iteration == iteration]
        self._cache.set(items, iteration)
        return [i.copy() for i in items]

    async def exists(self, item_id: str) -> bool:
        return self._item_path(item_id).exists()

    async def get(self, item_id: str) -> WorkItem:
        path = self._item_path(item_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(item_id) from None
        return parse_item_file(raw)

    async def create(self, data: Mapping[str, Any]) -> WorkItem:
        data = self._normalize(data)
        self._validate_fields(data)
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError("Work item title is required")

        items = await self.list()
        item_id, counter = self._next_free_id()
        self._validate_relationships(item_id, data, items)
        self.config.next_id = counter + 1

        now = utc_now()
        types = self.config.types
        item = WorkItem(
            id=item_id,
            title=title,
            type=data.get("type") or ("task" if "task" in types else (types[0] if types else "issue")),
            status=data.get("status") or (self.config.statuses[0] if self.config.statuses else ""),
            iteration=data.get("iteration") or self.config.current_iteration,
            priority=data.get("priority") or DEFAULT_PRIORITY,
            assignee=data.get("assignee") or "",
            labels=data.get("labels") or [],
            description=data.get("description") or "",
            parent=data.get("parent"),
            depends_on=data.get("depends_on") or [],
            created=now,
            updated=now,
        )
        self._register_iteration(item.iteration)
        self._save_config()
        self._write(item)
        self._cache.invalidate()
        self._logger.log_item_action("create", item.id)
        return item

    async def update(self, item_id: str, partial: Mapping[str, Any]) -> WorkItem:
        partial = self._normalize(partial)
        self._validate_fields(partial)
        current = await self.get(item_id)
        if "title" in partial and not str(partial["title"] or "").strip():
            raise ValidationError("Work item title cannot be empty")
        self._validate_relationships(item_id, partial, await self.list())

        updated = current.copy(**partial, id=item_id, updated=utc_now())
        if self._register_iteration(updated.iteration):
            self._save_config()
        self._write(updated)
        self._cache.invalidate()
        self._logger.log_item_action("update", item_id, fields=sorted(partial))
        return updated

    async def delete(self, item_id: str) -> None:
        if not await self.exists(item_id):
            raise NotFoundError(item_id)
        self._unlink(item_id)
        self._cache.invalidate()
        for other in self._read_all():
            changed = False
            if other.parent == item_id:
                other.parent = None
                changed = True
            if item_id in other.depends_on:
                other.depends_on = [d for d in other.depends_on if d != item_id]
                changed = True
            if changed:
                self._write(other)
        self._cache.invalidate()
        self._logger.log_item_action("delete", item_id)

    async def add_comment(self, item_id: str, comment: NewComment) -> Comment:
        if not self.capabilities.comments:
            raise UnsupportedFieldError("comments", self.backend_name)
        if not comment.body.strip():
            raise ValidationError("Comment body cannot be empty")
        item = await self.get(item_id)
        now = utc_now()
        new_comment = Comment(author=comment.author, date=now, body=comment.body.strip())
        item.comments.append(new_comment)
        item.updated = now
        self._write(item)
        self._cache.invalidate()
        self._logger.log_item_action("comment", item_id)
        return new_comment

    # --- relationship queries -------------------------------------------
    async def children(self, item_id: str) -> list[WorkItem]:
        return [i for i in await self.list() if i.parent == item_id]

    async def dependents(self, item_id: str) -> list[WorkItem]:
        return [i for i in await self.list() if item_id in i.depends_on]

    # --- vocabulary ------------------------------------------------------
    def statuses(self) -> list[str]:
        return list(self.config.statuses)

    def types(self) -> list[str]:
        return list(self.config.types)

    def iterations(self) -> list[str]:
        return list(self.config.iterations)

    def current_iteration(self) -> str:
        return self.config.current_iteration

    async def set_current_iteration(self, name: str) -> None:
        self.config.current_iteration = name
        self._register_iteration(name)
        self._save_config()

    async def sync_config(
        self,
        *,
        statuses: Iterable[str] | None = None,
        iterations: Iterable[str] | None = None,
        types: Iterable[str] | None = None,
        current_iteration: str | None = None,
    ) -> None:
        """Adopt the remote's vocabulary after a pull."""
        if statuses is not None:
            self.config.statuses = unique_ordered(statuses)
        if iterations is not None:
            self.config.iterations = unique_ordered(iterations)
        if types is not None:
            self.config.types = unique_ordered(types)
        if current_iteration:
            self.config.current_iteration = current_iteration
            self._register_iteration(current_iteration)
        self._save_config()

    # --- sync hooks (no validation: the remote is the system of record) ---
    async def put(self, item: WorkItem) -> None:
        self._write(item)
        self._cache.invalidate()

    async def discard(self, item_id: str) -> None:
        self._unlink(item_id)
        self._cache.invalidate()

    async def rename(self, old_id: str, new_id: str) -> WorkItem:
        """Move ``old_id`` to ``new_id`` and repoint every reference to it."""
        item = await self.get(old_id)
        renamed = item.copy(id=new_id)
        self._write(renamed)
        if old_id != new_id:
            self._unlink(old_id)
        self._cache.invalidate()
        for other in self._read_all():
            changed = False
            if other.parent == old_id:
                other.parent = new_id
                changed = True
            if old_id in other.depends_on:
                other.depends_on = [new_id if d == old_id else d for d in other.depends_on]
                changed = True
            if changed:
                self._write(other)
        self._cache.invalidate()
        return renamed


__all__ = ["ITEMS_DIR", "ItemStore", "LOCAL_CAPABILITIES", "items_dir"]
