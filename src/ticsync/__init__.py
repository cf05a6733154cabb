"""ticsync - local-first work item tracking with queued remote sync.

High-level public API:

from ticsync import Workspace, NewComment

with Workspace.open(".") as ws:
    item = await ws.tracker.create({"title": "Fix login"})
    await ws.tracker.add_comment(item.id, NewComment(author="alice", body="On it"))
    if ws.manager is not None:
        result = await ws.manager.sync()

Items are written to ``.tic/items`` immediately; with a remote backend
configured every write is also queued and pushed on the next sync.
"""

from __future__ import annotations

from .adapters import GitHubAdapter, InMemoryAdapter, RemoteAdapter, build_adapter
from .config import StoreConfig, load_config
from .errors import (
    AdapterError,
    ConfigError,
    CorruptStateError,
    CycleDetectedError,
    DanglingReferenceError,
    NotFoundError,
    SelfReferenceError,
    TicError,
    UnsupportedFieldError,
    ValidationError,
)
from .models import (
    Capabilities,
    Comment,
    FieldCapabilities,
    NewComment,
    PushResult,
    QueueEntry,
    SyncError,
    SyncResult,
    SyncStatus,
    WorkItem,
    is_local_id,
)
from .mutation_queue import MutationQueue
from .runtime import Workspace
from .store import ItemStore
from .sync import SyncManager
from .tracker import Tracker

# Keep in sync with pyproject.toml
__version__ = "0.1.0"

__all__ = [
    "AdapterError",
    "Capabilities",
    "Comment",
    "ConfigError",
    "CorruptStateError",
    "CycleDetectedError",
    "DanglingReferenceError",
    "FieldCapabilities",
    "GitHubAdapter",
    "InMemoryAdapter",
    "ItemStore",
    "MutationQueue",
    "NewComment",
    "NotFoundError",
    "PushResult",
    "QueueEntry",
    "RemoteAdapter",
    "SelfReferenceError",
    "StoreConfig",
    "SyncError",
    "SyncManager",
    "SyncResult",
    "SyncStatus",
    "TicError",
    "Tracker",
    "UnsupportedFieldError",
    "ValidationError",
    "WorkItem",
    "Workspace",
    "__version__",
    "build_adapter",
    "is_local_id",
    "load_config",
]
