# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Logs are rendered as JSON in production and as colored console output
in development. Dispatch workers call setup_logging() once at process
boot and bind job context around each processed job.

Example:
    >>> from pushdispatch.utils.logging import setup_logging, get_logger
    >>> from pushdispatch.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> logger.info("Job processed", queue="timetable", delivered=42)
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from pushdispatch.core.config.settings import Settings


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the dispatch pipeline.

    Sets up structlog with processors based on environment:
    - Development: Colored console output
    - Production: JSON output for log aggregation

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.debug:
        render_chain: list[Processor] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        render_chain = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[*shared_processors, *render_chain],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # stdlib records go through the same chain, bound job context included
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *render_chain,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Provider SDKs and drivers are chatty at DEBUG
    for logger_name in [
        "httpx",
        "httpcore",
        "hpack",
        "h2",
        "aioapns",
        "sqlalchemy",
        "asyncio",
        "urllib3",
        "dramatiq",
    ]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("pushdispatch").setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    The dispatch worker binds queue and message identifiers while a job
    is being processed.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.

    Example:
        >>> bind_context(queue="timetable", message_id="abc-123")
        >>> logger.info("Sending chunk")  # includes queue and message_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables.

    Called after each job so context does not leak between jobs
    processed on the same worker thread.
    """
    structlog.contextvars.clear_contextvars()


def mask_token(token: str, visible: int = 16) -> str:
    """Shorten a device token for log output.

    Args:
        token: Full device token.
        visible: Number of leading characters to keep.

    Returns:
        Truncated token suitable for logs.
    """
    if len(token) <= visible:
        return token
    return f"{token[:visible]}..."
