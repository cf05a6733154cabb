"""Remote adapters and the factory that picks one from the store config."""

from __future__ import annotations

from ..config import StoreConfig, validate_backend
from ..errors import ConfigError
from ..retry import RetryConfig
from .base import GITHUB_CAPABILITIES, RemoteAdapter
from .github import GitHubAdapter, GitHubClient
from .memory import InMemoryAdapter


def build_adapter(cfg: StoreConfig, *, retry: RetryConfig | None = None) -> RemoteAdapter | None:
    """Adapter for ``cfg.backend``; ``None`` for the local-only backend."""
    validate_backend(cfg)
    if cfg.backend == "github":
        if not cfg.github_repo:
            raise ConfigError("github backend requires github.repo (owner/repo) in .tic/config.yml")
        client = GitHubClient(
            cfg.github_token,
            cfg.github_repo,
            base_url=cfg.github_api_url,
            retry=retry,
        )
        return GitHubAdapter(client)
    return None


__all__ = [
    "GITHUB_CAPABILITIES",
    "GitHubAdapter",
    "GitHubClient",
    "InMemoryAdapter",
    "RemoteAdapter",
    "build_adapter",
]
