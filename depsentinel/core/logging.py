"""Structured logging setup for depsentinel entry points."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

LEVEL_ENV = "DEPSENTINEL_LOG_LEVEL"
FORMAT_ENV = "DEPSENTINEL_LOG_FORMAT"
FORMATS = ("console", "json")

# Third-party loggers that are noisy at the depsentinel level.
_QUIET_LOGGERS = ("asyncio", "concurrent.futures")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog on top of stdlib logging, writing to stderr.

    Only entry points (the CLI, or a host without logging of its own) call
    this; library modules just ask structlog for a logger.

    Arguments win over the environment:
        DEPSENTINEL_LOG_LEVEL  — log level (default: INFO)
        DEPSENTINEL_LOG_FORMAT — console | json (default: console)
    """
    log_level = (level or os.environ.get(LEVEL_ENV, "INFO")).upper()
    fmt = (log_format or os.environ.get(FORMAT_ENV, "console")).lower()
    if fmt not in FORMATS:
        fmt = "console"

    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers: dict[str, dict[str, str]] = {"depsentinel": {"level": log_level}}
    loggers.update({name: {"level": "WARNING"} for name in _QUIET_LOGGERS})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(fmt),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stderr"], "level": log_level},
            "loggers": loggers,
        }
    )
