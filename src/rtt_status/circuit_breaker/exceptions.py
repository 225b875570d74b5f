"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - Any exception raised by the protected operation itself, which is
    re-raised unchanged after being recorded.
"""

from datetime import datetime


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a trial call may be attempted.
        next_attempt_at: Absolute time of the next trial window, if known.
    """

    def __init__(
        self,
        breaker_name: str,
        retry_after: float,
        next_attempt_at: datetime | None = None,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next trial window opens.
            next_attempt_at: Timestamp of the next trial window.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        self.next_attempt_at = next_attempt_at
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")
