"""
Structured logging for kvlog, built on structlog.

Log records go through the standard library ``logging`` module so that the
level filter and the output stream are shared with any host application.
Two renderers are available: JSON lines for production and a colored
console renderer for interactive use.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every entry with the application name."""
    event_dict["app"] = "kvlog"
    return event_dict


def _build_handler(log_output: str) -> logging.Handler:
    if log_output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if log_output == "stderr":
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(log_output, mode="a", encoding="utf-8")


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_output: str = "stderr",
) -> None:
    """
    Configure structured logging for the process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_output: stdout, stderr, or a file path to append to

    Raises:
        ValueError: If the level or format is unknown
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    if log_format not in ("json", "console"):
        raise ValueError(f"Unknown log format: {log_format}")

    # stdout is reserved for values written by the CLI, so logs default to stderr.
    # force=True closes the handlers of any earlier configuration.
    logging.basicConfig(
        format="%(message)s",
        handlers=[_build_handler(log_output)],
        level=level,
        force=True,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_output in ("stdout", "stderr"))

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger bound to a module name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        structlog logger
    """
    return structlog.get_logger(name)
