"""Async circuit breaker guarding the RTT search dependency.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - ``HALF_OPEN`` is a real, observable state. It is entered right before the
    first trial call once the recovery timeout has elapsed, and is left only
    after ``success_threshold`` consecutive successes (to ``CLOSED``) or a
    single failure (back to ``OPEN``).
  - Half-open probing is conservative: at most one in-flight trial call is
    permitted per ``CircuitBreaker`` instance.
  - The breaker never retries. Every attempt a caller makes is recorded.
"""

from rtt_status.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from rtt_status.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from rtt_status.circuit_breaker.metrics import BreakerListener
from rtt_status.circuit_breaker.state import BreakerStats, CircuitState, LastError

__all__ = [
    "BreakerListener",
    "BreakerStats",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LastError",
]
