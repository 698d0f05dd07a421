"""Unit tests for spec-kit status logging and observability.

This module tests the logging infrastructure, performance monitoring,
and observability hooks.
"""

import json
import logging
import sys
import pytest
from pathlib import Path

from speckit_status.speckit_logging import (
    setup_logging,
    JsonFormatter,
    PerformanceMonitor,
    log_performance,
    log_operation,
    ObservabilityHooks,
    log_error_with_context,
    log_history_append,
    log_snapshot_built,
    observability_hooks,
    performance_monitor,
)


@pytest.fixture(autouse=True)
def reset_monitor():
    performance_monitor.clear()
    yield
    performance_monitor.clear()
    for handler in logging.getLogger("speckit").handlers:
        handler.close()
    logging.getLogger("speckit").handlers.clear()


class TestJsonFormatter:
    """Test cases for JsonFormatter."""

    def test_json_formatter_basic(self):
        """Test basic JSON formatting."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, __file__, 1, "Test message", (), None)

        data = json.loads(formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert "function" in data

    def test_json_formatter_with_exception(self):
        """Test JSON formatting with exception info."""
        formatter = JsonFormatter()
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = logging.getLogger("test").makeRecord(
                "test", logging.ERROR, __file__, 1, "Test message", (), sys.exc_info()
            )

        data = json.loads(formatter.format(record))

        assert data["level"] == "ERROR"
        assert "ValueError" in data["exception"]

    def test_json_formatter_serializes_paths(self):
        """Extra fields that are not JSON types are stringified."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, __file__, 1, "msg", (), None)
        record.extra_fields = {"location": Path("/tmp/spec.md")}

        data = json.loads(formatter.format(record))

        assert data["location"] == str(Path("/tmp/spec.md"))


class TestPerformanceMonitor:
    """Test cases for PerformanceMonitor."""

    def test_record_metric(self):
        """Test recording a performance metric."""
        monitor = PerformanceMonitor()
        monitor.record_metric("scan", 42, {"tag": "test"})

        metrics = monitor.get_metrics("scan")

        assert metrics["scan"][0]["value"] == 42
        assert metrics["scan"][0]["tags"]["tag"] == "test"

    def test_clear(self):
        monitor = PerformanceMonitor()
        monitor.record_metric("scan", 1)
        monitor.clear()
        assert monitor.get_metrics() == {}


class TestLogPerformance:
    """Test cases for log_performance decorator."""

    def test_sync_success(self):
        """Test the decorator on a plain function."""
        @log_performance("sync_operation")
        def operation():
            return "result"

        assert operation() == "result"
        metrics = performance_monitor.get_metrics("sync_operation_duration")["sync_operation_duration"]
        assert len(metrics) == 1
        assert metrics[0]["tags"]["status"] == "success"

    @pytest.mark.asyncio
    async def test_async_success(self):
        """Test the decorator on a coroutine function."""
        @log_performance("async_operation")
        async def operation():
            return 7

        assert await operation() == 7
        metrics = performance_monitor.get_metrics("async_operation_duration")["async_operation_duration"]
        assert metrics[0]["tags"]["status"] == "success"

    @pytest.mark.asyncio
    async def test_async_failure(self):
        """Failures are recorded and re-raised."""
        @log_performance("failing_operation")
        async def operation():
            raise ValueError("Test error")

        with pytest.raises(ValueError):
            await operation()

        metrics = performance_monitor.get_metrics("failing_operation_duration")["failing_operation_duration"]
        assert metrics[0]["tags"]["status"] == "error"
        assert metrics[0]["tags"]["error_type"] == "ValueError"


class TestLogOperation:
    """Test cases for log_operation context manager."""

    def test_log_operation_success(self, caplog):
        """Test successful operation logging."""
        caplog.set_level(logging.DEBUG, logger="speckit")

        with log_operation("test_operation", param1="value1"):
            pass

        messages = [record.getMessage() for record in caplog.records]
        assert "Starting operation: test_operation" in messages
        assert any(message.startswith("Completed operation: test_operation") for message in messages)

    def test_log_operation_with_exception(self, caplog):
        """Test operation logging with exception."""
        caplog.set_level(logging.DEBUG, logger="speckit")

        with pytest.raises(ValueError):
            with log_operation("test_operation"):
                raise ValueError("Test error")

        errors = [record for record in caplog.records if record.levelno == logging.ERROR]
        assert errors
        assert "Test error" in errors[0].getMessage()


class TestObservabilityHooks:
    """Test cases for ObservabilityHooks."""

    def test_register_and_trigger_hooks(self):
        """Test registering and triggering hooks."""
        hooks = ObservabilityHooks()
        received = []
        hooks.register_hook("test_event", lambda **data: received.append(data))

        hooks.trigger_hooks("test_event", test_param="test_value")

        assert received == [{"test_param": "test_value"}]

    def test_unregister_hook(self):
        hooks = ObservabilityHooks()
        received = []
        callback = lambda **data: received.append(data)
        hooks.register_hook("test_event", callback)
        hooks.unregister_hook("test_event", callback)

        hooks.trigger_hooks("test_event", value=1)

        assert received == []

    def test_hook_failure_handling(self):
        """Test that hook failures don't crash the system."""
        hooks = ObservabilityHooks()

        def failing_callback(**data):
            raise ValueError("Hook failed")

        hooks.register_hook("test_event", failing_callback)
        hooks.trigger_hooks("test_event", param="value")

    def test_log_workflow_event_passes_branch_key(self):
        """Workflow events reach hooks with their branch key."""
        hooks = ObservabilityHooks()
        received = []
        hooks.register_hook("history_appended", lambda **data: received.append(data))

        hooks.log_workflow_event("history_appended", branch_key="/repo:001-first", appended=1)

        assert received[0]["branch_key"] == "/repo:001-first"
        assert received[0]["appended"] == 1
        assert "timestamp" in received[0]


class TestLoggingFunctions:
    """Test cases for logging convenience functions."""

    def test_log_history_append(self):
        received = []
        callback = lambda **data: received.append(data)
        observability_hooks.register_hook("history_appended", callback)
        try:
            log_history_append("/repo:001-first", appended=1, suppressed=2)
        finally:
            observability_hooks.unregister_hook("history_appended", callback)

        assert received[0]["appended"] == 1
        assert received[0]["suppressed"] == 2

    def test_log_snapshot_built(self):
        received = []
        callback = lambda **data: received.append(data)
        observability_hooks.register_hook("snapshot_built", callback)
        try:
            log_snapshot_built(None, "artifact-fallback", 0, derived_from="artifact-scan")
        finally:
            observability_hooks.unregister_hook("snapshot_built", callback)

        assert received[0]["status_source"] == "artifact-fallback"
        assert received[0]["derived_from"] == "artifact-scan"

    def test_log_error_with_context(self, caplog):
        """Test log_error_with_context function."""
        caplog.set_level(logging.ERROR, logger="speckit")
        error = ValueError("Test error")

        log_error_with_context(error, {"operation": "append_history"}, extra_param="extra_value")

        record = caplog.records[-1]
        assert "append_history" in record.getMessage()
        assert record.extra_fields["error_type"] == "ValueError"
        assert record.extra_fields["extra_param"] == "extra_value"
        assert record.extra_fields["context"]["operation"] == "append_history"


class TestLoggingIntegration:
    """Integration tests for logging functionality."""

    def test_setup_logging(self, tmp_path):
        """Test setting up logging configuration."""
        log_file = tmp_path / "status.log"
        setup_logging(log_level=logging.DEBUG, log_file=log_file)

        logging.getLogger("speckit.test").info("Test message")
        for handler in logging.getLogger("speckit").handlers:
            handler.flush()

        content = log_file.read_text()
        assert "Test message" in content
        for line in content.strip().split("\n"):
            json.loads(line)

    def test_setup_logging_replaces_handlers(self):
        """Calling setup twice does not duplicate handlers."""
        setup_logging(log_level=logging.INFO)
        setup_logging(log_level=logging.INFO)

        assert len(logging.getLogger("speckit").handlers) == 1
