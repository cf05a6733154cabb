"""Centralized retry / backoff helpers.

``run_with_retries`` wraps a thunk that talks to a remote. Only
``AdapterError``s flagged ``transient`` (rate limits, 5xx, dropped
connections) are retried, with exponential backoff plus jitter; an explicit
``Retry-After`` hint wins over the computed delay. Everything else
propagates on the first failure.

Environment overrides:
  TICSYNC_RETRY_ATTEMPTS (default 3)
  TICSYNC_RETRY_BASE (seconds base, default 0.5)
  TICSYNC_RETRY_MAX_SLEEP (cap on any single sleep)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import AdapterError
from .logging import get_logger

T = TypeVar("T")

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error output.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: int(os.environ.get("TICSYNC_RETRY_ATTEMPTS", "3")))
    base_sleep: float = field(default_factory=lambda: float(os.environ.get("TICSYNC_RETRY_BASE", "0.5")))
    sleep: Callable[[float], None] = time.sleep


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _compute_sleep(attempt: int, cfg: RetryConfig, exc: AdapterError) -> float:
    explicit = exc.retry_after
    if explicit is None:
        explicit = _extract_explicit_backoff(f"{exc} {exc.response_text or ''}")
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("TICSYNC_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except AdapterError as exc:
            if attempt >= attempts or not exc.transient:
                raise
            sleep_for = _compute_sleep(attempt, cfg, exc)
            get_logger().warning(
                f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                error=str(exc),
            )
            cfg.sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "is_transient", "run_with_retries"]
