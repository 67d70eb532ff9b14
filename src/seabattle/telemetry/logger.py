"""Logging helpers with OpenTelemetry export.

Engine modules log a snake_case event name and pass context through
``extra``; :class:`EventFormatter` renders that context as ``key=value``
pairs so console output stays readable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

if TYPE_CHECKING:
    from .config import TelemetryConfig

_OTLP_HANDLER: logging.Handler | None = None
_CONSOLE_HANDLER: logging.Handler | None = None

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "otelTraceID", "otelSpanID", "otelServiceName", "otelTraceSampled"}


class EventFormatter(logging.Formatter):
    """Appends ``extra`` fields to the message as sorted ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s | %(levelname)s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if fields:
            line += " | " + " ".join(f"{key}={fields[key]}" for key in sorted(fields))
        return line


def get_logger(name: str = "seabattle") -> logging.Logger:
    return logging.getLogger(name)


def configure_console_logging(level: int | str = logging.WARNING) -> logging.Handler:
    """Attach a single stderr handler using :class:`EventFormatter` to the package logger."""
    global _CONSOLE_HANDLER
    package_logger = logging.getLogger("seabattle")
    package_logger.setLevel(level)
    if _CONSOLE_HANDLER is None:
        _CONSOLE_HANDLER = logging.StreamHandler()
        _CONSOLE_HANDLER.setFormatter(EventFormatter())
        package_logger.addHandler(_CONSOLE_HANDLER)
    _CONSOLE_HANDLER.setLevel(level)
    return _CONSOLE_HANDLER


def init_logging(config: TelemetryConfig) -> logging.Logger:
    """Ship package log records to the OTLP endpoint, once per process."""
    global _OTLP_HANDLER
    package_logger = get_logger()
    if _OTLP_HANDLER is not None:
        return package_logger

    provider = LoggerProvider(resource=config.resource())
    if config.otlp_endpoint:
        exporter = OTLPLogExporter(endpoint=config.otlp_endpoint, insecure=True)
        provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    set_logger_provider(provider)

    _OTLP_HANDLER = LoggingHandler(level=config.log_level, logger_provider=provider)
    package_logger.setLevel(config.log_level)
    package_logger.addHandler(_OTLP_HANDLER)
    return package_logger
