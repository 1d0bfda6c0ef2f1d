"""
Semantic test: bounded retry with exponential backoff.

Invariant:
Only network and remote_internal failures are retried, at most
max_attempts times in total; the last error is re-raised unchanged.
"""

from __future__ import annotations

import pytest

from trading_dashboard.core.domain.errors import EngineApiError
from trading_dashboard.engine.retry import RetryPolicy, is_retryable, with_retry


def flaky(*errors: Exception, result: str = "ok"):
    calls: list[int] = []
    pending = list(errors)

    def _op() -> str:
        calls.append(1)
        if pending:
            raise pending.pop(0)
        return result

    return _op, calls


def test_backoff_doubles_and_is_capped() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=8.0, jitter=0.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 8.0]


def test_jitter_stays_within_cap() -> None:
    policy = RetryPolicy(base_delay=4.0, max_delay=5.0, jitter=0.5)
    for _ in range(20):
        assert 4.0 <= policy.delay_for(1) <= 5.0


def test_transient_failures_are_retried() -> None:
    slept: list[float] = []
    seen: list[int] = []
    op, calls = flaky(EngineApiError("network", "timeout"), EngineApiError("remote_internal", "HTTP 502"))
    policy = RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0.0, sleep=slept.append)

    assert with_retry(op, policy, on_retry=lambda attempt, exc, delay: seen.append(attempt)) == "ok"

    assert len(calls) == 3
    assert slept == [0.5, 1.0]
    assert seen == [1, 2]


def test_exhausted_attempts_reraise_last_error() -> None:
    last = EngineApiError("network", "third")
    op, calls = flaky(EngineApiError("network", "first"), EngineApiError("network", "second"), last)
    policy = RetryPolicy(max_attempts=3, base_delay=0.0, sleep=lambda _s: None)

    with pytest.raises(EngineApiError) as info:
        with_retry(op, policy)

    assert info.value is last
    assert len(calls) == 3


@pytest.mark.parametrize("kind", ["validation", "authentication", "unknown"])
def test_non_retryable_kinds_fail_fast(kind) -> None:
    op, calls = flaky(EngineApiError(kind, "nope"))
    policy = RetryPolicy(max_attempts=5, base_delay=0.0, sleep=lambda _s: None)

    with pytest.raises(EngineApiError):
        with_retry(op, policy)

    assert len(calls) == 1


def test_builtin_timeouts_are_retryable() -> None:
    assert is_retryable(TimeoutError())
    assert is_retryable(ConnectionError())
    assert not is_retryable(ValueError("bad"))
