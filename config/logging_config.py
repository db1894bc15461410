"""structlog setup shared by every process: JSON lines on stdout with UTC timestamps."""

import logging
import sys

import structlog

_configured_level: int | None = None


def configure_logging(component: str, level: str = "INFO", **context) -> structlog.BoundLogger:
    """
    Return a logger bound to `component` and any extra context. structlog is
    configured on first use and again only when the requested level changes.
    Values bound with structlog.contextvars (the aggregation run id) are merged
    into every line.
    """
    global _configured_level
    numeric = getattr(logging, level.upper(), logging.INFO)
    if _configured_level != numeric:
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(numeric),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
            cache_logger_on_first_use=True,
        )
        _configured_level = numeric
    return structlog.get_logger(component=component, **context)
