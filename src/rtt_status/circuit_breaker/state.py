"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class LastError:
    """Summary of the most recent failure observed by a breaker."""

    message: str
    kind: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "LastError":
        return cls(message=str(exc), kind=exc.__class__.__name__)


@dataclass(frozen=True)
class BreakerStats:
    """Point-in-time view of breaker internals useful for health checks/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state, including ``HALF_OPEN`` during probing.
        failure_count: Failures counted since the last success or reset.
        success_count: Consecutive successes while ``HALF_OPEN``.
        failure_threshold: Failures required while ``CLOSED`` before opening.
        success_threshold: Successes required while ``HALF_OPEN`` before closing.
        recovery_timeout: Seconds the breaker stays ``OPEN`` before a trial call.
        next_attempt_at: Earliest time a trial call is admitted, if open.
        last_error: Most recent failure, cleared by a success or reset.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    failure_threshold: int
    success_threshold: int
    recovery_timeout: float
    next_attempt_at: datetime | None
    last_error: LastError | None
