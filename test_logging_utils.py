#!/usr/bin/env python3
"""
Tests for logging utilities.

This validates that the centralized logging and store error handling works
correctly.
"""

import aiosqlite
import httpx
import pytest
from pydantic import ValidationError

from ingres_assistant.history.models import StoreResult
from ingres_assistant.logging_utils import (
    ContextualLogger,
    StoreErrorHandler,
    handle_store_errors,
    log_operation,
    operation_context,
)


class TestStoreErrorHandler:
    """Test the StoreErrorHandler class."""

    def test_classify_http_status_error(self):
        """Test classification of httpx status errors."""
        request = httpx.Request("GET", "http://backend/conversations")
        response = httpx.Response(500, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)
        assert StoreErrorHandler.classify_error(error) == "http_status_error"

    def test_classify_timeout_error(self):
        """Test that TimeoutError is classified as timeout_error."""
        assert StoreErrorHandler.classify_error(TimeoutError("slow")) == "timeout_error"
        assert (
            StoreErrorHandler.classify_error(httpx.ReadTimeout("slow"))
            == "timeout_error"
        )

    def test_classify_connection_error(self):
        """Test classification of transport and OS level errors."""
        assert (
            StoreErrorHandler.classify_error(httpx.ConnectError("refused"))
            == "connection_error"
        )
        assert (
            StoreErrorHandler.classify_error(ConnectionError("Network unreachable"))
            == "connection_error"
        )

    def test_classify_database_error(self):
        """Test classification of SQLite errors."""
        error = aiosqlite.IntegrityError("FOREIGN KEY constraint failed")
        assert StoreErrorHandler.classify_error(error) == "database_error"

    def test_classify_validation_error(self):
        """Test classification of ValidationError."""
        validation_error = ValidationError.from_exception_data(
            "ValidationError",
            [{"type": "missing", "loc": ("field",), "input": {}}],
        )
        assert StoreErrorHandler.classify_error(validation_error) == "validation_error"

    def test_classify_value_error(self):
        """Test classification of ValueError."""
        assert (
            StoreErrorHandler.classify_error(ValueError("Invalid parameter"))
            == "parameter_error"
        )

    def test_classify_unknown_error(self):
        """Test classification of unknown error type."""
        assert (
            StoreErrorHandler.classify_error(RuntimeError("Unknown error"))
            == "unknown_error"
        )

    def test_create_failure(self):
        """Test that create_failure returns a failed StoreResult."""
        result = StoreErrorHandler.create_failure(
            ValueError("Test error"), "test_operation", {"conversation_id": "c1"}
        )

        assert isinstance(result, StoreResult)
        assert not result
        assert result.error == "test_operation failed: Test error"
        assert result.not_supported is False


class TestDecorators:
    """Test logging and error handling decorators."""

    @pytest.mark.asyncio
    async def test_log_operation_success(self):
        """Test log_operation decorator with successful function."""

        @log_operation("test_operation", log_timing=True)
        async def successful_function():
            return "success"

        result = await successful_function()
        assert result == "success"

    @pytest.mark.asyncio
    async def test_log_operation_with_error(self):
        """Test log_operation decorator with function that raises error."""

        @log_operation("test_operation", log_timing=True)
        async def failing_function():
            raise ValueError("Test error")

        with pytest.raises(ValueError, match="Test error"):
            await failing_function()

    @pytest.mark.asyncio
    async def test_handle_store_errors_converts_exception(self):
        """Test handle_store_errors turns exceptions into failures."""

        @handle_store_errors("list_conversations")
        async def failing_function():
            raise ConnectionError("Network unreachable")

        result = await failing_function()

        assert not result
        assert "list_conversations" in result.error
        assert "Network unreachable" in result.error

    @pytest.mark.asyncio
    async def test_handle_store_errors_passes_results_through(self):
        """Test handle_store_errors leaves returned results untouched."""

        @handle_store_errors("list_conversations")
        async def successful_function():
            return StoreResult.success(["a"])

        result = await successful_function()

        assert result
        assert result.value == ["a"]


class TestContextManager:
    """Test operation context manager."""

    @pytest.mark.asyncio
    async def test_operation_context_success(self):
        """Test operation context manager with successful operation."""

        async with operation_context("test_operation", log_timing=True) as logger:
            assert logger is not None

    @pytest.mark.asyncio
    async def test_operation_context_with_error(self):
        """Test operation context manager with failing operation."""

        with pytest.raises(ValueError, match="Test error"):
            async with operation_context("test_operation", log_timing=True):
                raise ValueError("Test error")


class TestContextualLogger:
    """Test ContextualLogger class."""

    def test_contextual_logger_initialization(self):
        """Test ContextualLogger initialization."""
        context = {"component": "chat_orchestrator", "session": "123"}
        logger = ContextualLogger(context)
        assert logger.base_context == context

    def test_contextual_logger_bind(self):
        """Test ContextualLogger bind method."""
        logger = ContextualLogger({"component": "chat_orchestrator"})

        bound_logger = logger.bind(conversation_id="c1")
        assert bound_logger.base_context == {
            "component": "chat_orchestrator",
            "conversation_id": "c1",
        }

    def test_contextual_logger_methods(self):
        """Test ContextualLogger logging methods don't raise exceptions."""
        logger = ContextualLogger({"component": "test"})

        logger.info("Test info message", extra="data")
        logger.warning("Test warning message", extra="data")
        logger.error("Test error message", extra="data")
        logger.debug("Test debug message", extra="data")
