"""Bounded retry policy with exponential backoff.

Only retryable error kinds (network, remote_internal) are retried; every
other failure is re-raised immediately.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from trading_dashboard.core.domain.errors import RETRYABLE_KINDS, classify_error

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, BaseException, float], None]


@dataclass(slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.2
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        exponential = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        if exponential <= 0.0 or self.jitter <= 0.0:
            return exponential
        return min(self.max_delay, exponential + random.uniform(0.0, exponential * self.jitter))


NO_RETRY = RetryPolicy(max_attempts=1)


def is_retryable(exc: BaseException) -> bool:
    kind, _, _ = classify_error(exc)
    return kind in RETRYABLE_KINDS


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    on_retry: OnRetry | None = None,
) -> T:
    """Run ``operation`` under ``policy`` and return its result.

    The last error is re-raised unchanged once attempts are exhausted.
    """
    attempts = max(1, policy.max_attempts)
    attempt = 1
    while True:
        try:
            return operation()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if attempt >= attempts or not is_retryable(exc):
                raise
            delay = policy.delay_for(attempt)
            LOGGER.warning(
                "Retrying %s attempt=%d/%d sleep=%.2fs reason=%s",
                label,
                attempt,
                attempts,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            policy.sleep(delay)
            attempt += 1
