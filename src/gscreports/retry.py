"""Summary: Retry policy and a generic retry-on-predicate helper.

Importance: Separates the backoff schedule from the classification code that needs it.
Alternatives: Inline sleep-and-retry loops at each call site, or use tenacity.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Summary: Bounded exponential backoff settings.

    Importance: ``max_retries`` counts retries, so a call runs at most ``max_retries + 1`` times.
    Alternatives: Count total attempts instead of retries.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, retry_number: int) -> float:
        """Summary: Seconds to wait before the given retry (1-based).

        Importance: Doubles from the initial delay and never exceeds ``max_delay``.
        Alternatives: Add random jitter to spread out concurrent retries.
        """

        return min(self.initial_delay * self.multiplier ** retry_number, self.max_delay)


class RetriesExhausted(Exception):
    """Summary: Raised when every allowed retry failed with a retryable error.

    Importance: Lets callers tell "gave up after backoff" apart from a first-try failure.
    Alternatives: Re-raise the last underlying error unchanged.
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Summary: Run ``func``, retrying only while ``should_retry`` accepts the error.

    Importance: Errors the predicate rejects propagate on the first occurrence.
    Alternatives: Retry every exception type.
    """

    retries = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if not should_retry(exc):
                raise
            if retries >= policy.max_retries:
                raise RetriesExhausted(retries + 1, exc) from exc
            retries += 1
            delay = policy.delay_for(retries)
            logger.warning(
                "%s hit a retryable error (%s); retry %s/%s in %.1fs.",
                label,
                exc,
                retries,
                policy.max_retries,
                delay,
            )
            sleep(delay)
