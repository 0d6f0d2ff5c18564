"""Bounded retry with exponential backoff for provider fetches."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class RetryPolicy:
    """Retries after the first attempt, with delays of backoff * 2**n."""

    max_retries: int = 2
    backoff_seconds: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def delay_for(self, retry_number: int) -> float:
        return self.backoff_seconds * (2 ** (retry_number - 1))


def with_retry(func: F) -> F:
    """Retry a provider method on ``ProviderError`` using ``self.retry_policy``.

    The last error propagates once retries are exhausted.
    """

    from .base import ProviderError

    @functools.wraps(func)
    def _wrapper(self, *args: Any, **kwargs: Any) -> Any:
        policy: RetryPolicy = self.retry_policy
        retry_number = 0
        while True:
            try:
                return func(self, *args, **kwargs)
            except ProviderError as exc:
                if retry_number >= policy.max_retries:
                    raise
                retry_number += 1
                delay = policy.delay_for(retry_number)
                logger.warning(
                    "%s request failed (%s retries left): %s. Retrying in %.2fs.",
                    getattr(self, "kind", type(self).__name__),
                    policy.max_retries - retry_number + 1,
                    exc,
                    delay,
                )
                policy.sleep(delay)

    return _wrapper  # type: ignore[return-value]
