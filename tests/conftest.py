"""Pytest configuration for ticsync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Retries in tests must never actually sleep.
os.environ.setdefault("TICSYNC_RETRY_MAX_SLEEP", "0")

# Ensure pytest-asyncio plugin is loaded explicitly so @pytest.mark.asyncio tests run
pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def tic_root(tmp_path: Path) -> Path:
    (tmp_path / ".tic").mkdir()
    return tmp_path


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TICSYNC_QUIET", "TICSYNC_RETRY_ATTEMPTS", "TICSYNC_RETRY_BASE", "GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_COLOR", "1")


@pytest.fixture(autouse=True)
def _fresh_logger():
    # Each test gets a logger bound to its own stderr capture.
    import ticsync.logging as tic_logging

    tic_logging._GLOBAL = None
    yield
    tic_logging._GLOBAL = None


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        _TEST_DURATIONS.append((item.nodeid, time.perf_counter() - start))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
