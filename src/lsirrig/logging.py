"""
Structured logging configuration for lsirrig.

Provides:
- get_logger: Get a structlog logger bound to a component name
- configure_logging: Configure logging output format

Loggers are structlog BoundLoggers routed through the standard library
``lsirrig`` logger, so handlers attached by the host model also receive
irrigation events.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

__all__ = ["get_logger", "configure_logging"]


def get_logger(component: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a logger for a specific component.

    Args:
        component: Component name (e.g., "engine", "restart")
        **context: Additional key/value pairs bound to every event

    Returns:
        Lazy structlog logger with ``component`` bound. The default
        structlog configuration does not cache, so module-level loggers
        pick up the first configure_logging() call. After that call a
        logger is fixed on first use and ignores later reconfiguration

    Example:
        log = get_logger("engine")
        log.info("engine_initialized", n_patches=12)
    """
    return structlog.get_logger(f"lsirrig.{component}", component=component, **context)


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    output: str = "stderr",
) -> None:
    """
    Configure logging output.

    Args:
        level: Log level ("DEBUG", "INFO", "WARNING", "ERROR")
        format: Output format ("json" or "console")
        output: Output destination ("stderr", "stdout", or file path)

    Example:
        # JSON output for batch runs
        configure_logging(level="INFO", format="json")

        # Pretty console output while developing
        configure_logging(level="DEBUG", format="console")
    """
    level_num = getattr(logging, level.upper(), logging.INFO)

    if output == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    elif output == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.FileHandler(output)

    # structlog renders the full event; the stdlib handler only emits it
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger("lsirrig")
    root_logger.setLevel(level_num)
    for old in list(root_logger.handlers):
        old.close()
        root_logger.removeHandler(old)
    root_logger.addHandler(handler)

    if format == "json":
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
