"""Structured logging for the ingestion pipeline, API and CLI."""

import logging
import os
import sys
from typing import Optional

import structlog

LOG_LEVEL_ENV = "NEWSRANK_LOG_LEVEL"
LOG_FORMAT_ENV = "NEWSRANK_LOG_FORMAT"  # "json" or "console"


def configure_logging(level: Optional[str] = None) -> None:
    """Route structlog through stdlib logging on stderr.

    ``NEWSRANK_LOG_LEVEL`` wins over ``level``; the default is INFO.
    """
    name = (os.environ.get(LOG_LEVEL_ENV) or level or "INFO").upper()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, name, logging.INFO),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if _is_json_mode()
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _is_json_mode() -> bool:
    """Explicit format setting, else JSON whenever stderr is not a terminal."""
    fmt = os.environ.get(LOG_FORMAT_ENV, "").lower()
    if fmt in ("json", "console"):
        return fmt == "json"
    return not sys.stderr.isatty()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
