"""Structured logging configuration for telegram-logger.

Sets up structlog with pretty console output on a terminal and JSON lines
otherwise (cron, systemd). Logs go to stderr so command output on stdout
stays clean. Routed through stdlib logging so httpx logs share the format.
"""

import logging
import sys
from typing import TextIO, cast

import structlog


def configure_logging(
    service_name: str = "telegram-logger",
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging.

    Args:
        service_name: Bound to every log entry as `service`
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        stream: Output stream (default: stderr)
    """
    log_level = getattr(logging, level.upper())
    stream = stream or sys.stderr

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if stream.isatty()
        else structlog.processors.JSONRenderer()
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processor=renderer,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # httpx logs every request at INFO, which would include the bot token
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__ from calling module)
    """
    return cast(structlog.BoundLogger, structlog.get_logger(name))
