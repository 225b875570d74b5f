from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Protocol, cast

import pytest
import structlog

from rtt_status.logging import (
    bind_device_context,
    clear_device_context,
    configure_structlog,
    get_log_level_value,
    get_logger,
    log_debug,
    log_error,
    log_exception,
    log_info,
    log_warning,
    redact_secrets,
)
from tests.rtt_status.support.fakes import FakeLogger


def _configured_renderer() -> object:
    root_handler = logging.getLogger().handlers[0]
    formatter = root_handler.formatter
    assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
    return formatter.processors[-1]


def test_get_log_level_value_maps_known_levels() -> None:
    assert get_log_level_value("debug") == logging.DEBUG
    assert get_log_level_value("INFO") == logging.INFO
    assert get_log_level_value(" warning ") == logging.WARNING
    assert get_log_level_value("ERROR") == logging.ERROR
    assert get_log_level_value("critical") == logging.CRITICAL


def test_get_log_level_value_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="log_level must be one of"):
        get_log_level_value("TRACE")


def test_configure_structlog_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)

    first_logger = configure_structlog(log_level="INFO")
    second_logger = configure_structlog(log_level="DEBUG")

    assert len(logging.getLogger().handlers) == 1
    assert logging.getLogger().level == logging.DEBUG
    assert first_logger is not None
    assert second_logger is not None


def test_configure_structlog_uses_console_renderer_for_tty(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: True, raising=False)

    configure_structlog(log_level="INFO")
    renderer = _configured_renderer()

    assert isinstance(renderer, structlog.dev.ConsoleRenderer)


def test_configure_structlog_uses_json_renderer_for_non_tty(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)

    configure_structlog(log_level="INFO")
    renderer = _configured_renderer()

    assert isinstance(renderer, structlog.processors.JSONRenderer)


def test_get_logger_returns_structlog_proxy() -> None:
    logger = get_logger("rtt_status.tests")

    assert hasattr(logger, "info")
    assert hasattr(logger, "warning")


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class _RecordWithStructuredFields(Protocol):
    origin: str
    attempt: int


@pytest.mark.parametrize(
    ("log_fn", "level"),
    [
        (log_debug, "debug"),
        (log_info, "info"),
        (log_warning, "warning"),
        (log_error, "error"),
        (log_exception, "exception"),
    ],
)
def test_structured_log_helpers_forward_keyword_fields(
    log_fn: Callable[..., None],
    level: str,
) -> None:
    logger = FakeLogger()

    log_fn(logger, "rtt.search_retry", origin="CAMBDGE", attempt=3)

    assert logger.calls == [
        (
            level,
            "rtt.search_retry",
            {"origin": "CAMBDGE", "attempt": 3},
        )
    ]


def test_structured_log_helpers_support_stdlib_logger_extra() -> None:
    logger = logging.getLogger("tests.rtt_status.logging.helpers")
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.INFO)
    handler = _CaptureHandler()
    logger.addHandler(handler)

    log_info(logger, "rtt.search_started", origin="CAMBDGE", attempt=1)

    assert len(handler.records) == 1
    record = handler.records[0]
    typed_record = cast(_RecordWithStructuredFields, record)
    assert record.getMessage() == "rtt.search_started"
    assert typed_record.origin == "CAMBDGE"
    assert typed_record.attempt == 1


def test_redact_secrets_masks_credential_fields_and_headers() -> None:
    event = redact_secrets(
        None,
        "info",
        {
            "event": "rtt.search_started",
            "password": "hunter2",
            "headers": {"Authorization": "Basic dTpw", "Accept": "application/json"},
            "origin": "CAMBDGE",
        },
    )

    assert event["password"] == "***"
    assert event["headers"] == {"Authorization": "***", "Accept": "application/json"}
    assert event["origin"] == "CAMBDGE"


def test_bound_device_context_is_merged_into_events() -> None:
    bind_device_context(device_name="Train Status", origin="CAMBDGE")
    try:
        merged = structlog.contextvars.merge_contextvars(None, "info", {"event": "x"})
    finally:
        clear_device_context()

    assert merged == {"event": "x", "device_name": "Train Status", "origin": "CAMBDGE"}
    assert structlog.contextvars.get_contextvars() == {}
