"""structlog configuration for the document pipeline.

Events carry the ingestion context bound with
``structlog.contextvars.bound_contextvars`` (storage key, source filename)
plus level and an ISO timestamp.  Output is JSON when ``APP_ENV`` is
``production`` or ``json_output`` is set, and a coloured console
rendering otherwise.  Records from stdlib loggers (openai, chromadb,
botocore) go through the same renderer.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

# Silenced to WARNING unless the level is DEBUG.
_NOISY_LOGGERS = ("httpx", "chromadb", "botocore", "urllib3")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _stdlib_handler(renderer: structlog.types.Processor) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_shared_processors(),
                renderer,
            ],
        )
    )
    return handler


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Install the processor chain and route stdlib logging through it.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.
        json_output: Render JSON even outside production.

    Returns:
        The root structlog logger.
    """
    level = log_level.upper()
    if json_output or os.environ.get("APP_ENV", "development") == "production":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(_stdlib_handler(renderer))
    root_logger.setLevel(level)

    if level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; falls back to the default configuration if none is installed yet."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
