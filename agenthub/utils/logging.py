"""Logging configuration for the application."""

import logging
import sys
from typing import Any

import structlog

# Chatty third-party loggers that would otherwise log every token request and
# every MCP session message.
NOISY_LOGGERS = ("httpx", "httpcore", "mcp")


def _renderer(log_level: str) -> Any:
    if log_level == "DEBUG":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog on top of the standard library logging module.
    Call once at process start, before the application is imported by uvicorn.
    """
    log_level = log_level.upper()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[*shared_processors, _renderer(log_level)],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records emitted through plain `logging` (uvicorn, httpx, supabase) go
    # through the same renderer.
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(log_level),
        foreign_pre_chain=shared_processors,
        fmt="%(message)s",
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    if log_level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)
