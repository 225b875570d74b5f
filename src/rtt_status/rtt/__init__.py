from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import cast

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type

from rtt_status.circuit_breaker import (
    BreakerStats,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
)
from rtt_status.domain.timeutils import format_date_ymd
from rtt_status.logging import (
    StructuredLogger,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from rtt_status.retry import RetryBackoffPolicy, build_exponential_jitter_retrying
from rtt_status.rtt.constants import (
    AUTH_STATUSES,
    BREAKER_NAME,
    CIRCUIT_OPEN_STATUS,
    DEFAULT_BASE_URL,
)
from rtt_status.rtt.errors import (
    ApiErrorKind,
    RttApiError,
    RttAuthError,
    RttCircuitOpenError,
    RttClientError,
    RttRetryableError,
    error_kind,
    is_auth_error,
    is_retryable,
)
from rtt_status.rtt.helpers import build_search_url, encode_basic_auth, excerpt

__all__ = [
    "ApiErrorKind",
    "ApiHealth",
    "RttApiClient",
    "RttApiError",
    "RttAuthError",
    "RttCircuitOpenError",
    "RttClientError",
    "RttRetryableError",
    "encode_basic_auth",
    "error_kind",
    "is_auth_error",
    "is_retryable",
]


@dataclass(frozen=True)
class ApiHealth:
    """Breaker statistics plus a derived health flag."""

    stats: BreakerStats
    is_healthy: bool


class _BreakerLogListener:
    """Log RTT breaker transitions as operational events."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        if new == CircuitState.OPEN:
            log_error(
                self._logger,
                "rtt.circuit_opened",
                breaker=name,
                previous_state=str(old),
            )
        elif new == CircuitState.CLOSED:
            log_info(
                self._logger,
                "rtt.circuit_closed",
                breaker=name,
                previous_state=str(old),
            )
        else:
            log_info(self._logger, "rtt.circuit_half_open", breaker=name)

    def on_call_rejected(self, name: str) -> None:
        _ = name

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        _ = (name, elapsed)

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        _ = (name, exc, elapsed)


class RttApiClient:
    """RTT search client with bounded retries behind a circuit breaker."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        username: str | None,
        password: str | None,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout_seconds: float = 10.0,
        max_retries: int = 3,
        retry_min_seconds: float = 1.0,
        retry_max_seconds: float = 10.0,
        breaker: CircuitBreaker | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create an RTT search client.

        Args:
            client: Shared async HTTP client used as the transport.
            username: RTT API username.
            password: RTT API password.
            base_url: RTT JSON API root.
            request_timeout_seconds: Per-attempt HTTP timeout.
            max_retries: Retries after the first attempt for transient failures.
            retry_min_seconds: Minimum retry backoff in seconds.
            retry_max_seconds: Maximum retry backoff in seconds.
            breaker: Breaker guarding every attempt. Built from
                ``breaker_config`` when omitted.
            breaker_config: Configuration for the default breaker.
            sleep: Optional async sleep used between retries.
            logger: Structured logger; defaults to this module's logger.
        """
        self._client = client
        self._username = username
        self._password = password
        self._base_url = base_url
        self._request_timeout = request_timeout_seconds
        self._retry_policy = RetryBackoffPolicy(
            max_retries=max_retries,
            min_seconds=retry_min_seconds,
            max_seconds=retry_max_seconds,
        )
        self._sleep = sleep
        self._logger: StructuredLogger = (
            get_logger(__name__) if logger is None else logger
        )
        if breaker is None:
            breaker = CircuitBreaker(
                BREAKER_NAME,
                config=breaker_config,
                listeners=[_BreakerLogListener(self._logger)],
            )
        self._breaker = breaker

    async def search(
        self,
        origin: str | None,
        destination: str | None,
        date_value: date | str,
        *,
        username: str | None = None,
        password: str | None = None,
        max_retries: int | None = None,
    ) -> dict[str, object]:
        """Search RTT for services from ``origin`` to ``destination``.

        Args:
            origin: Origin TIPLOC.
            destination: Destination TIPLOC.
            date_value: Service date, or a preformatted ``YYYY/MM/DD`` string.
            username: Per-call credential override.
            password: Per-call credential override.
            max_retries: Per-call override of the retry budget.

        Returns:
            The decoded JSON search response.

        Raises:
            RttAuthError: RTT rejected the credentials; never retried.
            RttClientError: Bad input or a non-auth 4xx; never retried.
            RttRetryableError: Transient failure after the retry budget ran out.
            RttCircuitOpenError: The breaker refused the attempt.
        """
        date_path = (
            format_date_ymd(date_value) if isinstance(date_value, date) else date_value
        )
        context: dict[str, object] = {
            "origin": origin,
            "destination": destination,
            "date": date_path,
        }
        if not origin or not destination:
            raise RttClientError(
                "RTT search requires both origin and destination TIPLOC",
                context=context,
            )

        resolved_username = username or self._username
        resolved_password = password or self._password
        if not resolved_username or not resolved_password:
            raise RttClientError(
                "RTT API credentials not configured",
                context=context,
            )

        url = build_search_url(self._base_url, origin, destination, date_path)
        headers = {
            "Accept": "application/json",
            "Authorization": (
                f"Basic {encode_basic_auth(resolved_username, resolved_password)}"
            ),
        }
        policy = self._retry_policy
        if max_retries is not None:
            policy = policy.with_max_retries(max_retries)

        retrying = self._build_retrying(policy)
        async for attempt in retrying:
            with attempt:
                attempt_context = {
                    **context,
                    "attempt": attempt.retry_state.attempt_number,
                }
                try:
                    return await self._breaker.call(
                        self._search_once,
                        url,
                        headers,
                        attempt_context,
                    )
                except CircuitOpenError as exc:
                    raise RttCircuitOpenError(
                        "RTT API temporarily unavailable (circuit breaker open)",
                        status_code=CIRCUIT_OPEN_STATUS,
                        endpoint=url,
                        context={
                            **attempt_context,
                            "circuit_open": True,
                            "retry_after": exc.retry_after,
                        },
                    ) from exc

        raise RuntimeError("RTT search retry loop exited unexpectedly.")

    def get_health(self) -> ApiHealth:
        """Return breaker statistics for health checks and diagnostics."""
        stats = self._breaker.get_stats()
        return ApiHealth(stats=stats, is_healthy=stats.state == CircuitState.CLOSED)

    def reset_circuit(self) -> None:
        """Manually close the breaker after the underlying issue is fixed."""
        log_info(self._logger, "rtt.circuit_reset", breaker=self._breaker.name)
        self._breaker.reset()

    async def _search_once(
        self,
        url: str,
        headers: Mapping[str, str],
        context: Mapping[str, object],
    ) -> dict[str, object]:
        try:
            response = await self._client.get(
                url,
                headers=dict(headers),
                timeout=self._request_timeout,
            )
        except httpx.RequestError as exc:
            raise RttRetryableError(
                f"Network error calling RTT API: {exc}",
                endpoint=url,
                context={**context, "original_error": str(exc)},
            ) from exc

        self._raise_for_status(response, url=url, context=context)
        return self._parse_json_object(response, url=url, context=context)

    @staticmethod
    def _raise_for_status(
        response: httpx.Response,
        *,
        url: str,
        context: Mapping[str, object],
    ) -> None:
        if response.is_success:
            return

        status = response.status_code
        message = f"RTT API request failed: {status} {response.reason_phrase}"
        response_body = excerpt(response.text)
        if status in AUTH_STATUSES:
            raise RttAuthError(
                message,
                status_code=status,
                endpoint=url,
                response_body=response_body,
                context=context,
            )
        if status >= 500:
            raise RttRetryableError(
                message,
                status_code=status,
                endpoint=url,
                response_body=response_body,
                context=context,
            )
        raise RttClientError(
            message,
            status_code=status,
            endpoint=url,
            response_body=response_body,
            context=context,
        )

    @staticmethod
    def _parse_json_object(
        response: httpx.Response,
        *,
        url: str,
        context: Mapping[str, object],
    ) -> dict[str, object]:
        try:
            response_data = response.json()
        except ValueError as exc:
            raise RttRetryableError(
                "RTT API response is not valid JSON.",
                status_code=response.status_code,
                endpoint=url,
                response_body=excerpt(response.text),
                context=context,
            ) from exc

        if not isinstance(response_data, dict):
            raise RttRetryableError(
                "RTT API response is not a JSON object.",
                status_code=response.status_code,
                endpoint=url,
                response_body=excerpt(response.text),
                context=context,
            )
        return cast(dict[str, object], response_data)

    def _build_retrying(self, policy: RetryBackoffPolicy) -> AsyncRetrying:
        return build_exponential_jitter_retrying(
            retry=retry_if_exception_type(RttRetryableError),
            policy=policy,
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )

    def _log_retry(self, state: RetryCallState) -> None:
        outcome = state.outcome
        error = outcome.exception() if outcome is not None else None
        fields: dict[str, object] = {"attempt": state.attempt_number}
        if isinstance(error, RttApiError):
            fields.update(error.to_log_fields())
        log_warning(self._logger, "rtt.search_retry", **fields)
