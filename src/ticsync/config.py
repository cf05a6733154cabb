from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import ConfigError, CorruptStateError
from .logging import get_logger

TIC_DIR = ".tic"
CONFIG_FILE = "config.yml"

VALID_BACKENDS = ("local", "github")

DEFAULT_TYPES = ["epic", "issue", "task"]
DEFAULT_STATUSES = ["backlog", "todo", "in-progress", "review", "done"]
DEFAULT_ITERATION = "default"
DEFAULT_API_URL = "https://api.github.com"


@dataclass
class StoreConfig:
    """Contents of ``.tic/config.yml``.

    Holds the backend selection, the vocabulary (types, statuses,
    iterations) and the counter used to mint local ids. Sections this
    package does not model are kept in ``extra`` and written back as-is.
    """

    backend: str = "local"
    types: list[str] = field(default_factory=lambda: list(DEFAULT_TYPES))
    statuses: list[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    iterations: list[str] = field(default_factory=lambda: [DEFAULT_ITERATION])
    current_iteration: str = DEFAULT_ITERATION
    next_id: int = 1
    github_repo: str | None = None
    github_token: str | None = None
    github_api_url: str = DEFAULT_API_URL
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    retry_attempts: int = 3
    retry_base_sleep: float = 0.5
    cache_ttl_seconds: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def remote_backed(self) -> bool:
        return self.backend != "local"


def config_path(root: Path) -> Path:
    return root / TIC_DIR / CONFIG_FILE


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith("$"):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name, value)
    return value


def _str_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(v) for v in value if v is not None and str(v)]


def parse_config(raw: dict[str, Any]) -> StoreConfig:
    gh = cast(dict[str, Any], raw.get("github", {}) or {})
    logging_config = cast(dict[str, Any], raw.get("logging", {}) or {})
    retry_config = cast(dict[str, Any], raw.get("retry", {}) or {})
    cache_config = cast(dict[str, Any], raw.get("cache", {}) or {})
    known = {
        "backend", "types", "statuses", "iterations", "current_iteration",
        "next_id", "github", "logging", "retry", "cache",
    }

    token = gh.get("token", "$GITHUB_TOKEN")
    resolved_token = _resolve_env_var(token)
    if isinstance(resolved_token, str) and resolved_token.startswith("$"):
        resolved_token = None

    iterations = _str_list(raw.get("iterations"), [DEFAULT_ITERATION])
    return StoreConfig(
        backend=str(raw.get("backend") or "local"),
        types=_str_list(raw.get("types"), DEFAULT_TYPES),
        statuses=_str_list(raw.get("statuses"), DEFAULT_STATUSES),
        iterations=iterations,
        current_iteration=str(raw.get("current_iteration") or (iterations[0] if iterations else "")),
        next_id=int(raw.get("next_id", 1)),
        github_repo=gh.get("repo"),
        github_token=resolved_token,
        github_api_url=str(gh.get("api_url") or DEFAULT_API_URL),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        retry_attempts=int(retry_config.get("attempts", 3)),
        retry_base_sleep=float(retry_config.get("base_sleep", 0.5)),
        cache_ttl_seconds=float(cache_config.get("ttl_seconds", 0)),
        extra={k: copy.deepcopy(v) for k, v in raw.items() if k not in known},
    )


def _read_raw(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise CorruptStateError(path, str(exc)) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise CorruptStateError(path, "top-level value is not a mapping")
    return cast(dict[str, Any], raw)


def load_config(root: str | Path) -> StoreConfig:
    """Load ``.tic/config.yml``; a missing or corrupt file yields defaults."""
    p = config_path(Path(root))
    if not p.exists():
        return StoreConfig()
    try:
        raw = _read_raw(p)
        return parse_config(raw)
    except (CorruptStateError, TypeError, ValueError) as exc:
        get_logger().warning("config unreadable; using defaults", path=str(p), error=str(exc))
        return StoreConfig()


def dump_config(cfg: StoreConfig) -> dict[str, Any]:
    out: dict[str, Any] = dict(copy.deepcopy(cfg.extra))
    out.update({
        "backend": cfg.backend,
        "types": list(cfg.types),
        "statuses": list(cfg.statuses),
        "iterations": list(cfg.iterations),
        "current_iteration": cfg.current_iteration,
        "next_id": cfg.next_id,
    })
    gh: dict[str, Any] = {}
    if cfg.github_repo:
        gh["repo"] = cfg.github_repo
    if cfg.github_api_url != DEFAULT_API_URL:
        gh["api_url"] = cfg.github_api_url
    if gh:
        # The token itself is never written back; it is read from $GITHUB_TOKEN.
        out["github"] = gh
    if cfg.logging_json_enabled or cfg.logging_level != "INFO":
        out["logging"] = {"json_enabled": cfg.logging_json_enabled, "level": cfg.logging_level}
    if cfg.retry_attempts != 3 or cfg.retry_base_sleep != 0.5:
        out["retry"] = {"attempts": cfg.retry_attempts, "base_sleep": cfg.retry_base_sleep}
    if cfg.cache_ttl_seconds:
        out["cache"] = {"ttl_seconds": cfg.cache_ttl_seconds}
    return out


def save_config(root: str | Path, cfg: StoreConfig) -> None:
    p = config_path(Path(root))
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(yaml.safe_dump(dump_config(cfg), sort_keys=False), encoding="utf-8")
    tmp.replace(p)


def validate_backend(cfg: StoreConfig) -> None:
    if cfg.backend not in VALID_BACKENDS:
        raise ConfigError(
            f"Unknown backend '{cfg.backend}'. Valid backends: {', '.join(VALID_BACKENDS)}"
        )
    if cfg.backend == "github" and not cfg.github_repo:
        raise ConfigError("github backend requires github.repo (owner/repo) in .tic/config.yml")


__all__ = [
    "CONFIG_FILE",
    "StoreConfig",
    "TIC_DIR",
    "VALID_BACKENDS",
    "config_path",
    "dump_config",
    "load_config",
    "parse_config",
    "save_config",
    "validate_backend",
]
