"""Observability hooks for circuit breakers."""

from typing import Protocol

from rtt_status.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Hooks are invoked synchronously from inside the breaker's state
        transition, so they must not block. ``on_state_change`` fires once per
        real transition, including ``OPEN → HALF_OPEN`` when a trial call is admitted.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""
