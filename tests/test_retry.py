"""Summary: Tests for the retry helper.

Importance: Ensures only retryable errors are retried and the backoff is bounded.
Alternatives: Test backoff only through the classifier.
"""

from __future__ import annotations

import pytest

from gscreports.retry import RetriesExhausted, RetryPolicy, retry_call


def test_delay_doubles_and_caps() -> None:
    policy = RetryPolicy(max_retries=6, initial_delay=4.0, max_delay=30.0)
    assert [policy.delay_for(n) for n in range(1, 5)] == [8.0, 16.0, 30.0, 30.0]


def test_retry_call_succeeds_after_retryable_failures() -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    def _flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise ValueError("retry me")
        return "ok"

    result = retry_call(_flaky, RetryPolicy(), lambda exc: True, sleep=sleeps.append)
    assert result == "ok"
    assert sleeps == [2.0, 4.0]


def test_retry_call_raises_non_retryable_immediately() -> None:
    attempts: list[int] = []

    def _broken() -> str:
        attempts.append(1)
        raise KeyError("nope")

    with pytest.raises(KeyError):
        retry_call(_broken, RetryPolicy(), lambda exc: False, sleep=lambda _: None)
    assert len(attempts) == 1


def test_retry_call_gives_up_after_max_retries() -> None:
    """Summary: A persistent retryable error ends in RetriesExhausted.

    Importance: Callers can tell exhausted backoff apart from first-try failures.
    Alternatives: Retry forever.
    """

    def _always() -> str:
        raise ValueError("429")

    with pytest.raises(RetriesExhausted) as excinfo:
        retry_call(_always, RetryPolicy(max_retries=2), lambda exc: True, sleep=lambda _: None)
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, ValueError)
