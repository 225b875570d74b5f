from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Retry budget and exponential backoff boundaries.

    ``max_retries`` counts retries after the first attempt, so a policy with
    ``max_retries=0`` makes exactly one attempt.
    """

    max_retries: int
    min_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")

    @property
    def attempts(self) -> int:
        """Total attempts allowed, including the first one."""
        return self.max_retries + 1

    def with_max_retries(self, max_retries: int) -> RetryBackoffPolicy:
        """Return a copy of this policy with a different retry budget."""
        return RetryBackoffPolicy(
            max_retries=max_retries,
            min_seconds=self.min_seconds,
            max_seconds=self.max_seconds,
        )


def build_exponential_jitter_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with exponential jitter backoff."""
    options: dict[str, Any] = {
        "retry": retry,
        "wait": wait_exponential_jitter(
            initial=policy.min_seconds,
            max=policy.max_seconds,
        ),
        "stop": stop_after_attempt(policy.attempts),
        "reraise": reraise,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
