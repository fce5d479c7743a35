"""
Centralized logging and error handling utilities for the portal chat client.

This module provides decorators and helper functions to standardize logging
and error handling patterns across the codebase, reducing boilerplate and
ensuring consistent error reporting.

Features:
- Structured logging with contextual information
- Chat error handling decorators
- Automatic error type detection and classification
- Performance timing
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from portal_chat.llm.exceptions import (
    ChatError,
    InvalidMessageError,
    RateLimitError,
    StreamingError,
)

_BASE_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]

# Configure structured logging
structlog.configure(
    processors=[*_BASE_PROCESSORS, structlog.dev.ConsoleRenderer(colors=True)],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(logging_config: dict[str, Any]) -> None:
    """
    Apply the ``logging`` section of config.yaml.

    Args:
        logging_config: Dict with optional ``level`` and ``renderer``
            (``console`` or ``json``)
    """
    level_name = str(logging_config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level '{level_name}'")

    renderer_name = logging_config.get("renderer", "console")
    if renderer_name == "console":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=True)
    elif renderer_name == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        raise ValueError(
            f"Unknown logging renderer '{renderer_name}' (expected console or json)"
        )

    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)
    structlog.configure(
        processors=[*_BASE_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class ChatErrorHandler:
    """Centralized chat error handling with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> tuple[int, str]:
        """
        Classify an error and return an HTTP-like status code and category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (status_code, error_category)
        """
        if isinstance(error, RateLimitError):
            return 429, "rate_limit_error"
        if isinstance(error, InvalidMessageError):
            return 400, "invalid_input_error"
        if isinstance(error, ChatError):
            return error.status_code or 500, "chat_error"
        if isinstance(error, ValidationError):
            return 400, "validation_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return 504, "timeout_error"
        if isinstance(error, httpx.TransportError | ConnectionError | OSError):
            return 503, "connection_error"
        if isinstance(error, ValueError | TypeError):
            return 400, "parameter_error"
        return 500, "unknown_error"

    @staticmethod
    def create_chat_error(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
        custom_message: str | None = None,
    ) -> ChatError:
        """
        Create a StreamingError with structured logging.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging and error data
            custom_message: Override the default error message

        Returns:
            StreamingError with structured error data
        """
        status_code, error_category = ChatErrorHandler.classify_error(error)
        context = context or {}

        message = custom_message or f"{operation} failed: {error!s}"

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=error_category,
            status_code=status_code,
            error_message=str(error),
            **context,
        )

        return StreamingError(
            message,
            status_code=status_code,
            response_data={
                "operation": operation,
                "error_category": error_category,
                "original_error_type": type(error).__name__,
                **context,
            },
        )


def handle_chat_errors(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    custom_message: str | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for standardized chat error handling.

    ChatError instances pass through unchanged; transport and other
    failures are wrapped in a StreamingError carrying the operation context.

    Args:
        operation: Description of the operation for error context
        context: Additional context to include in error data
        custom_message: Custom error message template

    Returns:
        Decorated function with chat error handling
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except ChatError as e:
                logger.error(
                    "Chat error in operation",
                    operation=operation,
                    error_type=type(e).__name__,
                    status_code=e.status_code,
                    error_message=str(e),
                    **(context or {}),
                )
                raise
            except Exception as e:
                raise ChatErrorHandler.create_chat_error(
                    e, operation, context, custom_message
                ) from e

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging and error handling.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.info("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger

        log_data: dict[str, Any] = {}
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            log_data["duration_ms"] = duration

        operation_logger.info("Operation completed successfully", **log_data)

    except BaseException as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            error_log_data["duration_ms"] = duration

        operation_logger.error("Operation failed", **error_log_data)
        raise


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def info(self, message: str, **context: Any) -> None:
        """Log info message with context."""
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        """Log warning message with context."""
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        """Log error message with context."""
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        """Log debug message with context."""
        self._logger.debug(message, **context)
