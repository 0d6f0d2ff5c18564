from __future__ import annotations

import pytest

from app.providers import ProviderError, RetryPolicy
from app.providers.retry import with_retry


class FlakyClient:
    def __init__(self, failures: int, policy: RetryPolicy) -> None:
        self.failures = failures
        self.calls = 0
        self.retry_policy = policy

    @with_retry
    def fetch(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ProviderError(f"attempt {self.calls} failed")
        return "ok"


def test_delays_double_from_backoff():
    policy = RetryPolicy(max_retries=3, backoff_seconds=0.5)

    assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_recovers_within_retry_budget():
    sleeps: list[float] = []
    client = FlakyClient(failures=2, policy=RetryPolicy(max_retries=2, sleep=sleeps.append))

    assert client.fetch() == "ok"
    assert client.calls == 3
    assert sleeps == [1.0, 2.0]


def test_last_error_propagates_when_exhausted():
    sleeps: list[float] = []
    client = FlakyClient(failures=5, policy=RetryPolicy(max_retries=2, sleep=sleeps.append))

    with pytest.raises(ProviderError, match="attempt 3 failed"):
        client.fetch()
    assert client.calls == 3


def test_zero_retries_means_single_attempt():
    client = FlakyClient(failures=1, policy=RetryPolicy(max_retries=0, sleep=lambda _: None))

    with pytest.raises(ProviderError):
        client.fetch()
    assert client.calls == 1
