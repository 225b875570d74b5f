"""structlog setup and level-dispatching helpers for the poller process."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Mapping
from typing import Final, Literal, Protocol

import structlog
from structlog.typing import EventDict

LogLevelName = Literal["debug", "info", "warning", "error", "exception"]

_LEVEL_NAMES: Final = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Event fields that may carry RTT credentials.
_SECRET_FIELDS: Final = frozenset({"authorization", "password", "rtt_pass"})
_REDACTED: Final = "***"

_StdlibLogger = logging.Logger | logging.LoggerAdapter[logging.Logger]


class StructuredLogger(Protocol):
    """Logger protocol for structured event logging with keyword fields."""

    def debug(self, event: str, **kwargs: object) -> None: ...

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...

    def exception(self, event: str, **kwargs: object) -> None: ...


def get_log_level_value(level: str) -> int:
    """Return the stdlib level number for a case-insensitive level name.

    Raises:
        ValueError: If ``level`` is not one of the five stdlib level names.
    """
    normalized = level.strip().upper()
    if normalized not in _LEVEL_NAMES:
        choices = ", ".join(sorted(_LEVEL_NAMES))
        raise ValueError(f"log_level must be one of: {choices}")
    return logging.getLevelNamesMapping()[normalized]


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to a module name."""
    return structlog.stdlib.get_logger(name)


def bind_device_context(**fields: object) -> None:
    """Attach process-wide fields (device name, route) to every later event."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_device_context() -> None:
    structlog.contextvars.clear_contextvars()


def redact_secrets(_: object, __: str, event_dict: EventDict) -> EventDict:
    """Mask credential fields, including inside a nested ``headers`` mapping."""
    for key in tuple(event_dict):
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = _REDACTED
    headers = event_dict.get("headers")
    if isinstance(headers, Mapping):
        event_dict["headers"] = {
            str(name): _REDACTED if str(name).lower() in _SECRET_FIELDS else value
            for name, value in headers.items()
        }
    return event_dict


def _dispatch(
    logger: StructuredLogger | _StdlibLogger,
    level: LogLevelName,
    event: str,
    fields: dict[str, object],
) -> None:
    method = getattr(logger, level)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        # stdlib loggers only accept structured fields through ``extra``.
        method(event, extra=fields)
    else:
        method(event, **fields)


def log_debug(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    _dispatch(logger, "debug", event, fields)


def log_info(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    _dispatch(logger, "info", event, fields)


def log_warning(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    _dispatch(logger, "warning", event, fields)


def log_error(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    _dispatch(logger, "error", event, fields)


def log_exception(
    logger: StructuredLogger | _StdlibLogger, event: str, **fields: object
) -> None:
    """Log at error level with the active exception's traceback attached."""
    _dispatch(logger, "exception", event, fields)


def _renderer_for_stream(
    stream_is_tty: Callable[[], bool],
) -> structlog.types.Processor:
    if stream_is_tty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_structlog(*, log_level: str) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib records through one stderr handler.

    Both kinds of record get the same context, level, timestamp and secret
    masking. Output is a console rendering on a terminal and JSON lines
    otherwise. Calling this again replaces the previous configuration.
    """
    level_value = get_log_level_value(log_level)
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    common: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        timestamper,
        redact_secrets,
    ]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=common,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer_for_stream(sys.stderr.isatty),
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=level_value,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *common,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger()
