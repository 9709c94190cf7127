"""
Logging configuration.

Provides a single entry point for configuring structured logging with
structlog routed through the stdlib ``logging`` module.

Usage:
    # Configure once at startup (CLI entry, API factory)
    from trade_spine.logging import configure_logging, get_logger
    configure_logging(level="INFO", format="console")

    log = get_logger(__name__)
    log.info("batch_committed", worker=2, records=1000)
"""

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console"] = "console",
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level
        format: Output format, ``console`` for humans or ``json`` for shipping
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure stdlib logging to match
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level),
        force=True,
    )
    logging.getLogger("trade_spine").setLevel(getattr(logging, level))

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
