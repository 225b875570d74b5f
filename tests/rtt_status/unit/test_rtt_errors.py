from __future__ import annotations

import pytest

from rtt_status.errors import TransientError
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


@pytest.mark.parametrize(
    ("error_type", "kind", "retryable", "auth"),
    [
        (RttAuthError, ApiErrorKind.AUTH, False, True),
        (RttRetryableError, ApiErrorKind.RETRYABLE, True, False),
        (RttClientError, ApiErrorKind.CLIENT, False, False),
        (RttCircuitOpenError, ApiErrorKind.CIRCUIT_OPEN, False, False),
    ],
)
def test_classification_follows_kind_tag(
    error_type: type[RttApiError],
    kind: ApiErrorKind,
    retryable: bool,
    auth: bool,
) -> None:
    error = error_type("failed")

    assert error_kind(error) == kind
    assert is_retryable(error) is retryable
    assert is_auth_error(error) is auth


def test_foreign_errors_are_unclassified() -> None:
    error = ValueError("other")

    assert error_kind(error) is None
    assert is_retryable(error) is False
    assert is_auth_error(error) is False


def test_retryable_error_is_transient() -> None:
    assert isinstance(RttRetryableError("flaky"), TransientError)
    assert not isinstance(RttClientError("bad"), TransientError)


def test_context_is_read_only_copy() -> None:
    source = {"origin": "CAMBDGE"}
    error = RttClientError("bad", context=source)
    source["origin"] = "KNGX"

    assert error.context["origin"] == "CAMBDGE"
    with pytest.raises(TypeError):
        error.context["origin"] = "ROYSTON"  # type: ignore[index]


def test_to_log_fields_flattens_metadata() -> None:
    error = RttAuthError(
        "RTT API request failed: 401 Unauthorized",
        status_code=401,
        endpoint="https://api.rtt.io/api/v1/json/search/CAMBDGE/to/KNGX/2024/05/01",
        response_body="denied",
        context={"attempt": 1},
    )

    assert error.to_log_fields() == {
        "error_kind": "auth",
        "error_message": "RTT API request failed: 401 Unauthorized",
        "status_code": 401,
        "endpoint": "https://api.rtt.io/api/v1/json/search/CAMBDGE/to/KNGX/2024/05/01",
        "attempt": 1,
    }
    assert str(error) == error.message
