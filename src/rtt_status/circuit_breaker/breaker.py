"""Core circuit breaker implementation."""

import logging
import sys
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from types import TracebackType
from typing import ParamSpec, TypeVar

from rtt_status.circuit_breaker.exceptions import CircuitOpenError
from rtt_status.circuit_breaker.metrics import BreakerListener
from rtt_status.circuit_breaker.state import (
    BreakerStats,
    CircuitState,
    LastError,
)

T = TypeVar("T")
P = ParamSpec("P")

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _gil_enabled() -> bool:
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    return True if is_gil_enabled is None else bool(is_gil_enabled())


class _StateLock:
    """Serialize counter updates when threads can truly run in parallel.

    With the GIL enabled every state mutation below runs without an ``await``
    in between, so the event loop already serializes it.
    """

    def __init__(self) -> None:
        self._thread_lock: threading.RLock | None = None
        if not _gil_enabled():
            self._thread_lock = threading.RLock()

    def __enter__(self) -> None:
        if self._thread_lock is not None:
            self._thread_lock.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._thread_lock is not None:
            self._thread_lock.release()


class _ProbeGate:
    """Allow at most one in-flight half-open trial call per breaker instance."""

    def __init__(self) -> None:
        self._thread_lock: threading.Lock | None = None
        if not _gil_enabled():
            self._thread_lock = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            if self._held:
                return False
            self._held = True
            return True

        with self._thread_lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        if self._thread_lock is None:
            self._held = False
            return
        with self._thread_lock:
            self._held = False


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures required while ``CLOSED`` before opening.
        success_threshold: Consecutive successes required while ``HALF_OPEN``
            before closing again.
        recovery_timeout: Seconds to wait while ``OPEN`` before admitting a
            trial call.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    recovery_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")


class CircuitBreaker:
    """Stateful proxy around one dangerous async dependency.

    The breaker only gates and records calls. It never retries; callers that
    retry must route every attempt through :meth:`call` so each attempt is
    counted.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker in the ``CLOSED`` state.

        Args:
            name: Breaker name used in errors, stats and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = _StateLock()
        self._probe_gate = _ProbeGate()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt_at: datetime | None = None
        self._last_error: LastError | None = None

    @property
    def state(self) -> CircuitState:
        """Return the current breaker state."""
        return self._state

    def get_stats(self) -> BreakerStats:
        """Return an immutable snapshot of the breaker internals."""
        with self._lock:
            return BreakerStats(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                failure_threshold=self.config.failure_threshold,
                success_threshold=self.config.success_threshold,
                recovery_timeout=self.config.recovery_timeout,
                next_attempt_at=self._next_attempt_at,
                last_error=self._last_error,
            )

    def reset(self) -> None:
        """Force ``CLOSED`` and clear all counters and timestamps."""
        with self._lock:
            self._failure_count = 0
            self._success_count = 0
            self._next_attempt_at = None
            self._last_error = None
            self._transition(CircuitState.CLOSED)

    def force_open(self) -> None:
        """Force ``OPEN`` and restart the recovery window, e.g. for maintenance."""
        with self._lock:
            self._open(_utcnow())

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when admitted and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        probe_acquired = self._admit()

        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            self._record_failure(exc)
            self._emit_call_failed(exc, elapsed)
            raise
        else:
            elapsed = max(time.monotonic() - start, 0.0)
            self._record_success()
            self._emit_call_succeeded(elapsed)
            return result
        finally:
            if probe_acquired:
                self._probe_gate.release()

    def _admit(self) -> bool:
        """Admit or reject one call; return whether the trial gate was taken."""
        now = _utcnow()
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                retry_after = self._retry_after(now)
                if retry_after > 0:
                    self._reject(retry_after)
                if not self._probe_gate.try_acquire():
                    self._reject(0.0)
                self._success_count = 0
                self._transition(CircuitState.HALF_OPEN)
                return True

            if not self._probe_gate.try_acquire():
                self._reject(0.0)
            return True

    def _reject(self, retry_after: float) -> None:
        self._emit_call_rejected()
        raise CircuitOpenError(
            self.name,
            retry_after=retry_after,
            next_attempt_at=self._next_attempt_at,
        )

    def _record_failure(self, exc: Exception) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_error = LastError.from_exception(exc)
            if self._state == CircuitState.HALF_OPEN:
                self._open(_utcnow())
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._open(_utcnow())

    def _record_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._last_error = None
            if self._state != CircuitState.HALF_OPEN:
                return
            self._success_count += 1
            if self._success_count >= self.config.success_threshold:
                self._success_count = 0
                self._next_attempt_at = None
                self._transition(CircuitState.CLOSED)

    def _open(self, now: datetime) -> None:
        self._success_count = 0
        self._next_attempt_at = now + timedelta(seconds=self.config.recovery_timeout)
        self._transition(CircuitState.OPEN)

    def _retry_after(self, now: datetime) -> float:
        if self._next_attempt_at is None:
            return 0.0
        return max((self._next_attempt_at - now).total_seconds(), 0.0)

    def _transition(self, new: CircuitState) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        self._emit_state_change(old, new)

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                _logger.warning(
                    "Circuit breaker listener failed; continuing",
                    exc_info=True,
                    extra={"breaker": self.name, "hook": "on_state_change"},
                )

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                _logger.warning(
                    "Circuit breaker listener failed; continuing",
                    exc_info=True,
                    extra={"breaker": self.name, "hook": "on_call_rejected"},
                )

    def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                _logger.warning(
                    "Circuit breaker listener failed; continuing",
                    exc_info=True,
                    extra={"breaker": self.name, "hook": "on_call_succeeded"},
                )

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                _logger.warning(
                    "Circuit breaker listener failed; continuing",
                    exc_info=True,
                    extra={"breaker": self.name, "hook": "on_call_failed"},
                )
