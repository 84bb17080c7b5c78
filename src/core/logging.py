"""
Structured logging configuration using structlog.

This module provides a consistent logging setup across the search service.
It supports both development (colored console) and production (JSON) output.

Usage:
    from core.logging import configure_logging, get_logger

    # Configure once at startup
    configure_logging(json_logs=False)  # Development
    configure_logging(json_logs=True)   # Production

    # Get a logger
    logger = get_logger(__name__)

    # Log with context
    logger.info("Search completed", session_id="s-1", results=20)
    logger.warning("Retriever failed", source="semantic", error=str(e))

    # Time a block
    with log_duration(logger, "Catalog enrichment", ids=len(ids)):
        ...
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import Processor


# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "uvicorn.access",
    "algoliasearch",
    "postgrest",
)


def configure_logging(
    json_logs: bool = False,
    log_level: str = "INFO",
    include_timestamp: bool = True,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        json_logs: If True, output JSON format (for production).
                   If False, output colored console format (for development).
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_timestamp: Whether to include timestamp in logs
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        ))

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging_from_settings(settings: Any) -> None:
    """
    Configure logging from a Settings instance.

    Production gets JSON lines; every other environment gets the console
    renderer. DEBUG level is forced when settings.debug is set.
    """
    level = "DEBUG" if settings.debug else settings.log_level
    configure_logging(json_logs=settings.is_production, log_level=level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__). If None, returns root logger.

    Returns:
        A structlog BoundLogger instance
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to all subsequent logs in the current context.

    Useful for adding request-scoped context like session_id, request_id.

    Usage:
        bind_context(session_id="s-1", request_id="abc")
        logger.info("Searching")  # Will include session_id and request_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """
    Clear all bound context variables.

    Call this at the end of request processing to avoid context leaking.
    """
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Unbind specific context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def log_duration(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    level: str = "debug",
    **kwargs: Any,
) -> Iterator[dict]:
    """
    Log how long a block took, in milliseconds.

    Yields a dict the block may add fields to; they are logged with the
    timing. Exceptions propagate after a warning is logged.
    """
    extra: dict = {}
    start = time.perf_counter()
    try:
        yield extra
    except Exception as e:
        logger.warning(
            f"{event} failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **kwargs,
        )
        raise
    getattr(logger, level)(
        event,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
        **kwargs,
        **extra,
    )


class LoggerMixin:
    """
    Mixin class that provides a logger property.

    Usage:
        class ProfileStore(LoggerMixin):
            def evict_expired(self):
                self.logger.info("Evicting")
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(self.__class__.__name__)
