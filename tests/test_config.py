from __future__ import annotations

import pytest
import yaml

from ticsync.config import StoreConfig, config_path, load_config, parse_config, save_config, validate_backend
from ticsync.errors import ConfigError


def test_defaults_when_missing(tmp_path):
    cfg = load_config(tmp_path)
    assert cfg.backend == "local"
    assert cfg.types == ["epic", "issue", "task"]
    assert cfg.statuses[0] == "backlog"
    assert cfg.current_iteration == "default"
    assert cfg.next_id == 1
    assert cfg.remote_backed is False


def test_round_trip_preserves_unknown_sections(tmp_path):
    cfg_file = config_path(tmp_path)
    cfg_file.parent.mkdir()
    cfg_file.write_text(
        yaml.safe_dump({
            "backend": "github",
            "github": {"repo": "acme/widgets"},
            "next_id": 12,
            "team": {"name": "core"},
            "retry": {"attempts": 5, "base_sleep": 0.1},
            "cache": {"ttl_seconds": 30},
        })
    )
    cfg = load_config(tmp_path)
    assert cfg.github_repo == "acme/widgets"
    assert cfg.next_id == 12
    assert cfg.retry_attempts == 5
    assert cfg.cache_ttl_seconds == 30.0
    assert cfg.remote_backed

    cfg.next_id = 13
    save_config(tmp_path, cfg)
    raw = yaml.safe_load(cfg_file.read_text())
    assert raw["team"] == {"name": "core"}
    assert raw["next_id"] == 13
    assert raw["github"] == {"repo": "acme/widgets"}


def test_token_resolved_from_environment_and_never_saved(tmp_path, monkeypatch):
    monkeypatch.setenv("MY_TOKEN", "secret-value")
    cfg = parse_config({"backend": "github", "github": {"repo": "a/b", "token": "$MY_TOKEN"}})
    assert cfg.github_token == "secret-value"
    save_config(tmp_path, cfg)
    assert "secret-value" not in config_path(tmp_path).read_text()


def test_unresolved_token_is_none():
    cfg = parse_config({"github": {"token": "$NOT_SET_ANYWHERE"}})
    assert cfg.github_token is None


def test_corrupt_config_yields_defaults(tmp_path):
    cfg_file = config_path(tmp_path)
    cfg_file.parent.mkdir()
    cfg_file.write_text("backend: [unclosed\n")
    assert load_config(tmp_path) == StoreConfig()
    cfg_file.write_text("- just\n- a list\n")
    assert load_config(tmp_path) == StoreConfig()


def test_validate_backend():
    validate_backend(StoreConfig())
    with pytest.raises(ConfigError, match="Unknown backend"):
        validate_backend(StoreConfig(backend="jira"))
    with pytest.raises(ConfigError, match="github.repo"):
        validate_backend(StoreConfig(backend="github"))
