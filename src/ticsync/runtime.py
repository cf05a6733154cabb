"""Runtime helpers: the workspace context and CLI command execution."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any, Protocol

from .adapters import build_adapter
from .adapters.base import RemoteAdapter
from .config import TIC_DIR, StoreConfig, config_path, load_config, save_config, validate_backend
from .errors import ConfigError
from .logging import configure_logging, get_logger
from .mutation_queue import MutationQueue
from .retry import RetryConfig
from .store import ItemStore
from .sync import SyncManager
from .tracker import Tracker


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def retry_config_for(cfg: StoreConfig) -> RetryConfig:
    """Config-file retry settings; ``TICSYNC_RETRY_*`` environment values win."""
    return RetryConfig(
        attempts=int(os.environ.get("TICSYNC_RETRY_ATTEMPTS", cfg.retry_attempts)),
        base_sleep=float(os.environ.get("TICSYNC_RETRY_BASE", cfg.retry_base_sleep)),
    )


class Workspace:
    """Everything that operates on one ``.tic`` directory.

    Construction wires the store, queue, adapter and sync manager together;
    ``close`` releases the adapter. A workspace with the ``local`` backend
    has no queue, adapter or manager.
    """

    def __init__(
        self,
        root: Path,
        config: StoreConfig,
        *,
        adapter: RemoteAdapter | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.adapter = adapter
        if adapter is not None:
            self.store = ItemStore(
                root,
                config,
                capabilities=adapter.get_capabilities(),
                backend_name=adapter.name,
                temp_ids=True,
            )
            self.queue: MutationQueue | None = MutationQueue(root)
            self.manager: SyncManager | None = SyncManager(self.store, self.queue, adapter)
        else:
            self.store = ItemStore(root, config)
            self.queue = None
            self.manager = None
        self.tracker = Tracker(self.store, self.queue, self.manager)

    @classmethod
    def open(
        cls,
        root: str | Path = ".",
        *,
        adapter: RemoteAdapter | None = None,
        log_level: str | None = None,
    ) -> Workspace:
        """Load ``<root>/.tic`` and build its components.

        ``adapter`` replaces the one the configured backend would build.
        """
        path = Path(root)
        if not (path / TIC_DIR).is_dir():
            raise ConfigError(f"No {TIC_DIR} directory in {path.resolve()}; run 'ticsync init' first")
        cfg = load_config(path)
        validate_backend(cfg)
        configure_logging(json_logging=cfg.logging_json_enabled, level=log_level or cfg.logging_level)
        if adapter is None:
            adapter = build_adapter(cfg, retry=retry_config_for(cfg))
        return cls(path, cfg, adapter=adapter)

    @property
    def remote_backed(self) -> bool:
        return self.adapter is not None

    def close(self) -> None:
        close = getattr(self.adapter, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Workspace:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def init_workspace(root: str | Path, *, backend: str = "local", repo: str | None = None) -> tuple[Path, bool]:
    """Create ``<root>/.tic`` with a default config; existing config is kept."""
    path = Path(root)
    cfg_file = config_path(path)
    if cfg_file.exists():
        return cfg_file, False
    cfg = StoreConfig(backend=backend, github_repo=repo)
    validate_backend(cfg)
    save_config(path, cfg)
    return cfg_file, True


def _instrument_command(command: str, exit_code: int, start_time: float) -> None:
    duration = max(0.0, time.monotonic() - start_time)
    get_logger().debug(
        f"command {command} exited {exit_code}",
        operation=f"cli_{command}",
        duration_ms=round(duration * 1000, 2),
    )


def execute_command(handler: _HandlerCallable | Callable[[], Any], command: str) -> int:
    """Run a command handler and record its exit code and duration."""
    start = time.monotonic()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except Exception:
        _instrument_command(command, 1, start)
        raise
    _instrument_command(command, exit_code, start)
    return exit_code


__all__ = ["Workspace", "execute_command", "init_workspace", "retry_config_for"]
