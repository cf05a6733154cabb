from __future__ import annotations

import pytest

from ticsync import retry
from ticsync.errors import AdapterError

# Constants for test expectations
FIRST_SUCCESS_ATTEMPT = 2  # transient once then success
EXPECTED_RETRY_COUNT = 2  # total attempts when one retry occurs
RETRY_AFTER_SECONDS = 7.0


def _cfg(attempts: int, sleeps: list[float], base_sleep: float = 0.01) -> retry.RetryConfig:
    return retry.RetryConfig(attempts=attempts, base_sleep=base_sleep, sleep=sleeps.append)


def test_is_transient_tokens():
    assert retry.is_transient("Rate Limit exceeded")
    assert retry.is_transient("secondary rate limit triggered")
    assert retry.is_transient("ABUSE DETECTION mechanism")
    assert not retry.is_transient("some other error")


def test_run_with_retries_transient_then_success():
    attempts: list[int] = []
    sleeps: list[float] = []

    def fn():
        attempts.append(1)
        if len(attempts) < FIRST_SUCCESS_ATTEMPT:
            raise AdapterError("rate limit exceeded temporarily", status=429, transient=True)
        return "ok"

    assert retry.run_with_retries(fn, cfg=_cfg(3, sleeps)) == "ok"
    assert len(attempts) == EXPECTED_RETRY_COUNT
    assert len(sleeps) == 1


def test_run_with_retries_non_transient():
    attempts: list[int] = []

    def fn():
        attempts.append(1)
        raise AdapterError("Validation Failed", status=422)

    with pytest.raises(AdapterError):
        retry.run_with_retries(fn, cfg=_cfg(4, []))
    assert len(attempts) == 1


def test_run_with_retries_ignores_other_exceptions():
    attempts: list[int] = []

    def fn():
        attempts.append(1)
        raise ValueError("not an adapter failure")

    with pytest.raises(ValueError):
        retry.run_with_retries(fn, cfg=_cfg(3, []))
    assert len(attempts) == 1


def test_run_with_retries_transient_exhausts():
    attempts: list[int] = []
    sleeps: list[float] = []

    def fn():
        attempts.append(1)
        raise AdapterError("bad gateway", status=502, transient=True)

    cfg = _cfg(3, sleeps, base_sleep=0.0)
    with pytest.raises(AdapterError):
        retry.run_with_retries(fn, cfg=cfg)
    assert len(attempts) == cfg.attempts
    assert len(sleeps) == cfg.attempts - 1


def test_retry_honors_retry_after_attribute(monkeypatch):
    monkeypatch.delenv("TICSYNC_RETRY_MAX_SLEEP", raising=False)
    sleeps: list[float] = []
    state = {"count": 0}

    def fn() -> str:
        state["count"] += 1
        if state["count"] == 1:
            raise AdapterError("throttled", status=429, transient=True, retry_after=RETRY_AFTER_SECONDS)
        return "ok"

    assert retry.run_with_retries(fn, cfg=_cfg(3, sleeps)) == "ok"
    assert sleeps == [RETRY_AFTER_SECONDS]


def test_retry_reads_hint_from_response_text(monkeypatch):
    monkeypatch.delenv("TICSYNC_RETRY_MAX_SLEEP", raising=False)
    sleeps: list[float] = []
    state = {"count": 0}

    def fn() -> str:
        state["count"] += 1
        if state["count"] == 1:
            raise AdapterError("forbidden", status=403, transient=True, response_text="Please wait 30 seconds")
        return "ok"

    retry.run_with_retries(fn, cfg=_cfg(3, sleeps))
    assert sleeps == [30.0]


def test_retry_max_sleep_cap(monkeypatch):
    monkeypatch.setenv("TICSYNC_RETRY_MAX_SLEEP", "0.05")
    sleeps: list[float] = []
    state = {"count": 0}

    def fn() -> str:
        state["count"] += 1
        if state["count"] < 3:
            raise AdapterError("Secondary rate limit triggered", transient=True, retry_after=60)
        return "done"

    assert retry.run_with_retries(fn, cfg=_cfg(4, sleeps, base_sleep=0.02)) == "done"
    assert len(sleeps) == 2
    assert all(s <= 0.05 + 1e-6 for s in sleeps)


def test_retry_config_reads_environment(monkeypatch):
    monkeypatch.setenv("TICSYNC_RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("TICSYNC_RETRY_BASE", "1.5")
    cfg = retry.RetryConfig()
    assert cfg.attempts == 5
    assert cfg.base_sleep == 1.5
