"""Closed error taxonomy for RTT API failures.

Every failure surfaced by :class:`rtt_status.rtt.RttApiClient` is one of four
concrete exceptions. Each carries a fixed :class:`ApiErrorKind` tag, and
classification is done with the module-level predicates over that tag.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import ClassVar

from rtt_status.errors import TransientError


class ApiErrorKind(StrEnum):
    """Tag identifying which variant of RTT API failure occurred."""

    AUTH = "auth"
    RETRYABLE = "retryable"
    CLIENT = "client"
    CIRCUIT_OPEN = "circuit_open"


class RttApiError(RuntimeError):
    """Base exception for RTT API failures. Never raised directly."""

    kind: ClassVar[ApiErrorKind]

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str | None = None,
        response_body: str | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            status_code: Optional HTTP status observed from RTT.
            endpoint: Optional URL of the failed request.
            response_body: Optional response payload excerpt.
            context: Extra structured fields describing the request.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.context: Mapping[str, object] = MappingProxyType(dict(context or {}))

    def to_log_fields(self) -> dict[str, object]:
        """Return a flat mapping suitable for structured logging."""
        return {
            "error_kind": str(self.kind),
            "error_message": self.message,
            "status_code": self.status_code,
            "endpoint": self.endpoint,
            **dict(self.context),
        }


class RttAuthError(RttApiError):
    """Raised when RTT rejects the configured credentials (401/403)."""

    kind = ApiErrorKind.AUTH


class RttClientError(RttApiError):
    """Raised for non-retryable request problems (other 4xx, bad input)."""

    kind = ApiErrorKind.CLIENT


class RttRetryableError(RttApiError, TransientError):
    """Raised for transient failures: 5xx, transport errors, garbled bodies."""

    kind = ApiErrorKind.RETRYABLE


class RttCircuitOpenError(RttApiError):
    """Raised when the circuit breaker refuses the call without a request."""

    kind = ApiErrorKind.CIRCUIT_OPEN


def error_kind(error: BaseException) -> ApiErrorKind | None:
    """Return the taxonomy tag of ``error``, or ``None`` for foreign errors."""
    if isinstance(error, RttApiError):
        return error.kind
    return None


def is_retryable(error: BaseException) -> bool:
    """Return true when the client may retry the failed attempt."""
    return error_kind(error) == ApiErrorKind.RETRYABLE


def is_auth_error(error: BaseException) -> bool:
    """Return true when RTT rejected the credentials."""
    return error_kind(error) == ApiErrorKind.AUTH
