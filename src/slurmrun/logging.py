from __future__ import annotations

import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None, fmt: str | None = None):
    """Configure structlog once at CLI startup. Library code only calls get_logger()."""
    level_name = (level or os.environ.get("SLURMRUN_LOG_LEVEL", "INFO")).upper()
    fmt = (fmt or os.environ.get("SLURMRUN_LOG_FORMAT", "console")).lower()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=log_level, stream=sys.stderr, format="%(message)s")

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
    return structlog.get_logger()
