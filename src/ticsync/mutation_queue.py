"""Durable log of local mutations not yet confirmed by the remote.

The queue is a single JSON document rewritten wholesale on every change
(read, modify, write to a temp file, replace). At most one entry exists per
``(item_id, action)`` pair: appending a newer one drops the older one first,
so repeated offline edits of the same item never pile up.

The file is reconstructible intent, not primary data; an unreadable file is
logged and read as an empty queue.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import TIC_DIR
from .errors import CorruptStateError
from .logging import get_logger
from .models import QueueAction, QueueEntry

QUEUE_FILE = "sync-queue.json"
QUEUE_VERSION = 1


@dataclass
class QueueDocument:
    pending: list[QueueEntry] = field(default_factory=list)
    version: int = QUEUE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "pending": [e.to_dict() for e in self.pending]}


def queue_path(root: Path) -> Path:
    return root / TIC_DIR / QUEUE_FILE


def _parse_document(path: Path, text: str) -> QueueDocument:
    try:
        raw: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptStateError(path, str(exc)) from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("pending"), list):
        raise CorruptStateError(path, "missing pending list")
    try:
        entries = [QueueEntry.from_dict(e) for e in raw["pending"]]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise CorruptStateError(path, f"bad entry: {exc}") from exc
    return QueueDocument(pending=entries, version=int(raw.get("version") or QUEUE_VERSION))


class MutationQueue:
    def __init__(self, root: str | Path) -> None:
        self.path = queue_path(Path(root))
        self._logger = get_logger()

    def _load(self) -> QueueDocument:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return QueueDocument()
        try:
            return _parse_document(self.path, text)
        except CorruptStateError as exc:
            self._logger.warning("sync queue unreadable; treating as empty", path=str(self.path), error=exc.reason)
            return QueueDocument()

    def _store(self, document: QueueDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(document.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    async def read(self) -> list[QueueEntry]:
        return list(self._load().pending)

    async def pending_count(self) -> int:
        return len(self._load().pending)

    async def has_pending(self, item_id: str, action: QueueAction | None = None) -> bool:
        return any(
            e.item_id == item_id and (action is None or e.action == action)
            for e in self._load().pending
        )

    async def append(self, entry: QueueEntry) -> None:
        doc = self._load()
        doc.pending = [
            e for e in doc.pending if not (e.item_id == entry.item_id and e.action == entry.action)
        ]
        doc.pending.append(entry)
        self._store(doc)
        self._logger.debug("queued mutation", action=entry.action, item_id=entry.item_id)

    async def remove(self, item_id: str, action: QueueAction) -> None:
        doc = self._load()
        doc.pending = [e for e in doc.pending if not (e.item_id == item_id and e.action == action)]
        self._store(doc)

    async def drop_item(self, item_id: str) -> int:
        """Remove every pending entry for ``item_id``; returns how many went."""
        doc = self._load()
        kept = [e for e in doc.pending if e.item_id != item_id]
        dropped = len(doc.pending) - len(kept)
        if dropped:
            doc.pending = kept
            self._store(doc)
        return dropped

    async def clear(self) -> None:
        self._store(QueueDocument())

    async def rename_item(self, old_id: str, new_id: str) -> None:
        doc = self._load()
        for entry in doc.pending:
            if entry.item_id == old_id:
                entry.item_id = new_id
        self._store(doc)


__all__ = ["MutationQueue", "QUEUE_FILE", "QueueDocument", "queue_path"]
