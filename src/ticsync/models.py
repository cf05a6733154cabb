from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal

QueueAction = Literal["create", "update", "delete", "comment"]
SyncState = Literal["idle", "syncing", "error"]

QUEUE_ACTIONS: tuple[str, ...] = ("create", "update", "delete", "comment")
PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
DEFAULT_PRIORITY = "medium"
LOCAL_ID_PREFIX = "local-"

# Fields a caller may supply on create/update; id, timestamps and comments are store-owned.
WRITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "type",
    "status",
    "iteration",
    "priority",
    "assignee",
    "labels",
    "description",
    "parent",
    "depends_on",
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_local_id(item_id: str) -> bool:
    """True while an id is still a locally-minted temporary id."""
    return item_id.startswith(LOCAL_ID_PREFIX)


def unique_ordered(values: Iterable[Any]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        text = str(value).strip()
        if not text or text in seen:
            continue
        seen.add(text)
        out.append(text)
    return out


@dataclass
class NewComment:
    author: str
    body: str


@dataclass
class Comment:
    author: str
    date: str
    body: str

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Comment:
        return cls(
            author=str(raw.get("author") or ""),
            date=str(raw.get("date") or ""),
            body=str(raw.get("body") or ""),
        )


@dataclass
class WorkItem:
    """One ticket, as held by the local store or returned by a remote."""

    id: str
    title: str
    type: str = "issue"
    status: str = ""
    iteration: str = ""
    priority: str = DEFAULT_PRIORITY
    assignee: str = ""
    labels: list[str] = field(default_factory=list)
    description: str = ""
    comments: list[Comment] = field(default_factory=list)
    parent: str | None = None
    depends_on: list[str] = field(default_factory=list)
    created: str = ""
    updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WorkItem:
        parent = raw.get("parent")
        comments_raw = raw.get("comments") or []
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or ""),
            type=str(raw.get("type") or "issue"),
            status=str(raw.get("status") or ""),
            iteration=str(raw.get("iteration") or ""),
            priority=str(raw.get("priority") or DEFAULT_PRIORITY),
            assignee=str(raw.get("assignee") or ""),
            labels=unique_ordered(raw.get("labels") or []),
            description=str(raw.get("description") or ""),
            comments=[Comment.from_dict(c) for c in comments_raw if isinstance(c, Mapping)],
            parent=str(parent) if parent not in (None, "") else None,
            depends_on=unique_ordered(raw.get("depends_on") or []),
            created=str(raw.get("created") or ""),
            updated=str(raw.get("updated") or ""),
        )

    def snapshot(self) -> dict[str, Any]:
        """Writable fields only; the payload pushed to a remote on create/update."""
        data = self.to_dict()
        return {name: data[name] for name in WRITABLE_FIELDS}

    def copy(self, **changes: Any) -> WorkItem:
        fresh: dict[str, Any] = {
            "labels": list(self.labels),
            "depends_on": list(self.depends_on),
            "comments": [replace(c) for c in self.comments],
        }
        fresh.update(changes)
        return replace(self, **fresh)


@dataclass
class QueueEntry:
    action: QueueAction
    item_id: str
    timestamp: str = field(default_factory=utc_now)
    comment_data: NewComment | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "action": self.action,
            "item_id": self.item_id,
            "timestamp": self.timestamp,
        }
        if self.comment_data is not None:
            out["comment_data"] = asdict(self.comment_data)
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> QueueEntry:
        action = str(raw.get("action") or "")
        if action not in QUEUE_ACTIONS:
            raise ValueError(f"unknown queue action: {action!r}")
        comment_raw = raw.get("comment_data")
        comment = None
        if isinstance(comment_raw, Mapping):
            comment = NewComment(
                author=str(comment_raw.get("author") or ""),
                body=str(comment_raw.get("body") or ""),
            )
        return cls(
            action=action,  # type: ignore[arg-type]
            item_id=str(raw["item_id"]),
            timestamp=str(raw.get("timestamp") or utc_now()),
            comment_data=comment,
        )


@dataclass(frozen=True)
class FieldCapabilities:
    priority: bool = True
    assignee: bool = True
    labels: bool = True
    parent: bool = True
    depends_on: bool = True


@dataclass(frozen=True)
class Capabilities:
    """Static description of what one remote can represent."""

    relationships: bool = True
    custom_types: bool = True
    custom_statuses: bool = True
    iterations: bool = True
    comments: bool = True
    fields: FieldCapabilities = field(default_factory=FieldCapabilities)


@dataclass
class SyncError:
    entry: QueueEntry | None
    message: str
    timestamp: str = field(default_factory=utc_now)
    category: str = "generic"
    transient: bool = False


@dataclass
class SyncStatus:
    state: SyncState = "idle"
    pending_count: int = 0
    last_sync_time: str | None = None
    errors: list[SyncError] = field(default_factory=list)


@dataclass
class PushResult:
    pushed: int = 0
    failed: int = 0
    errors: list[SyncError] = field(default_factory=list)
    id_mappings: dict[str, str] = field(default_factory=dict)


@dataclass
class SyncResult:
    push: PushResult
    pull_count: int = 0
    pull_error: str | None = None


__all__ = [
    "Capabilities",
    "Comment",
    "DEFAULT_PRIORITY",
    "FieldCapabilities",
    "LOCAL_ID_PREFIX",
    "NewComment",
    "PRIORITIES",
    "PushResult",
    "QUEUE_ACTIONS",
    "QueueAction",
    "QueueEntry",
    "SyncError",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    "WRITABLE_FIELDS",
    "WorkItem",
    "is_local_id",
    "unique_ordered",
    "utc_now",
]
