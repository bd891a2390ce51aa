import logging
import sys
import time
from collections.abc import Sequence
from typing import Any

import structlog
from opentelemetry._logs import LogRecord, SeverityNumber
from opentelemetry.context import get_current
from opentelemetry.sdk._logs import LoggerProvider
from structlog.types import EventDict, FilteringBoundLogger, Processor

from .config import settings

# structlog method name to otel severity
_SEVERITIES = {
    "debug": (SeverityNumber.DEBUG, "DEBUG"),
    "info": (SeverityNumber.INFO, "INFO"),
    "warning": (SeverityNumber.WARN, "WARN"),
    "warn": (SeverityNumber.WARN, "WARN"),
    "error": (SeverityNumber.ERROR, "ERROR"),
    "exception": (SeverityNumber.ERROR, "ERROR"),
    "critical": (SeverityNumber.FATAL, "FATAL"),
    "fatal": (SeverityNumber.FATAL, "FATAL"),
}

_SKIPPED_EVENT_KEYS = frozenset({"event", "level", "severity", "timestamp"})


def add_severity_level(_logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """add severity field for cloud logging compatibility"""
    if method_name in ("warning", "warn"):
        event_dict["severity"] = "WARNING"
    else:
        event_dict["severity"] = method_name.upper()
    return event_dict


class OTelLogForwarder:
    """
    structlog processor that copies every event into an otel logger provider

    records are emitted in the current context so they carry the active span.
    the event dict is passed on untouched for local rendering.
    """

    def __init__(self, logger_provider: LoggerProvider, scope: str):
        self._logger = logger_provider.get_logger(scope)

    def __call__(self, _logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        severity_number, severity_text = _SEVERITIES.get(method_name, _SEVERITIES["info"])
        attributes = {
            key: _attribute_value(value)
            for key, value in event_dict.items()
            if key not in _SKIPPED_EVENT_KEYS
        }
        self._logger.emit(
            LogRecord(
                timestamp=time.time_ns(),
                context=get_current(),
                severity_number=severity_number,
                severity_text=severity_text,
                body=str(event_dict.get("event", "")),
                attributes=attributes,
            )
        )
        return event_dict


def _attribute_value(value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def build_processors(
    log_format: str = "json", extra_processors: Sequence[Processor] = ()
) -> list[Processor]:
    """shared processor chain ending in json or console rendering"""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_severity_level,
        structlog.processors.format_exc_info,
        *extra_processors,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
    extra_processors: Sequence[Processor] = (),
) -> None:
    """configure structlog with JSON or console output"""
    level = log_level or settings.log_level

    structlog.configure(
        processors=build_processors(log_format or settings.log_format, extra_processors),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        # reconfigured once telemetry is up
        cache_logger_on_first_use=False,
    )


def build_logger(
    log_level: str = "INFO",
    log_format: str = "json",
    extra_processors: Sequence[Processor] = (),
) -> FilteringBoundLogger:
    """standalone stdout logger that does not touch the global structlog config"""
    return structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stdout),
        processors=build_processors(log_format, extra_processors),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        context_class=dict,
    )


def production_logger() -> FilteringBoundLogger:
    """json logger at info level"""
    return build_logger("INFO", "json")


def development_logger() -> FilteringBoundLogger:
    """human readable logger at debug level"""
    return build_logger("DEBUG", "console")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """get configured logger instance"""
    return structlog.get_logger(name)
