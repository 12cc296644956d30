"""
Centralized logging and error handling utilities for INGRES AI Assistant.

This module provides decorators and helper functions to standardize logging
and error handling patterns across the codebase, reducing boilerplate and
ensuring consistent error reporting.

Features:
- Structured logging with contextual information
- Store error handling decorator returning failure results
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

import aiosqlite
import httpx
import structlog
from pydantic import ValidationError

from ingres_assistant.history.models import StoreResult

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]


def configure_logging(level: str = "INFO", *, colors: bool = True) -> None:
    """Configure stdlib logging and structlog on top of it."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structured logging
configure_logging()

logger = structlog.get_logger(__name__)


class StoreErrorHandler:
    """Centralized persistence error handling with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error into a category for diagnostics.

        Args:
            error: The exception to classify

        Returns:
            Error category name
        """
        if isinstance(error, httpx.HTTPStatusError):
            return "http_status_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return "timeout_error"
        if isinstance(error, httpx.HTTPError):
            return "connection_error"
        if isinstance(error, aiosqlite.Error):
            return "database_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, ConnectionError | OSError):
            return "connection_error"
        if isinstance(error, ValueError | TypeError | KeyError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def create_failure(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> StoreResult[Any]:
        """
        Log a failed store operation and build its failure result.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging

        Returns:
            StoreResult carrying a diagnostic message
        """
        error_category = StoreErrorHandler.classify_error(error)

        logger.error(
            "Store operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=error_category,
            error_message=str(error),
            **(context or {}),
        )

        return StoreResult.failure(f"{operation} failed: {error!s}")


def log_operation(
    operation: str,
    *,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            operation_logger.debug("Operation started")

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration

                operation_logger.debug(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.error("Operation failed", **error_log_data)
                raise

        return wrapper
    return decorator


def handle_store_errors(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
) -> Callable[
    [AsyncCallable[P, StoreResult[T]]], AsyncCallable[P, StoreResult[T]]
]:
    """
    Decorator converting exceptions of a store operation into failures.

    Args:
        operation: Description of the operation for error context
        context: Additional context to include in logs

    Returns:
        Decorated function that always returns a StoreResult
    """
    def decorator(
        func: AsyncCallable[P, StoreResult[T]],
    ) -> AsyncCallable[P, StoreResult[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> StoreResult[T]:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                return StoreErrorHandler.create_failure(e, operation, context)

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

    except Exception as e:
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
