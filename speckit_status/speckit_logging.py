"""Logging and observability utilities for spec-kit status tracking.

This module provides structured logging, performance monitoring,
and observability hooks for snapshot computation and history updates.
"""

from __future__ import annotations

import inspect
import json
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Setup structured logging for the status engine."""

    logger = std_logging.getLogger("speckit")
    logger.setLevel(log_level)
    logger.handlers.clear()

    detailed_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # stdout carries the MCP stdio transport, so the console handler writes to stderr
    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file)
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info("spec-kit status logging initialized")


class JsonFormatter(std_logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: std_logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class PerformanceMonitor:
    """Monitor performance metrics for status operations."""

    def __init__(self):
        self.metrics: Dict[str, List[Dict[str, Any]]] = {}

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a performance metric."""
        metric = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "name": name,
            "value": value,
            "tags": tags or {}
        }

        self.metrics.setdefault(name, []).append(metric)

        logger = std_logging.getLogger("speckit.performance")
        logger.debug(f"Metric recorded: {name}={value}", extra={"extra_fields": metric})

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Get recorded metrics."""
        if name:
            return {name: self.metrics.get(name, [])}
        return self.metrics.copy()

    def clear(self) -> None:
        self.metrics.clear()


# Global performance monitor instance
performance_monitor = PerformanceMonitor()


def _record_success(operation_name: str, start_time: float) -> None:
    duration = time.time() - start_time
    performance_monitor.record_metric(f"{operation_name}_duration", duration, {"status": "success"})
    std_logging.getLogger("speckit.performance").debug(
        f"Completed operation: {operation_name} in {duration:.3f}s",
        extra={"extra_fields": {
            "operation": operation_name,
            "duration": duration,
            "status": "success"
        }}
    )


def _record_failure(operation_name: str, start_time: float, error: Exception) -> None:
    duration = time.time() - start_time
    performance_monitor.record_metric(
        f"{operation_name}_duration",
        duration,
        {"status": "error", "error_type": type(error).__name__}
    )
    std_logging.getLogger("speckit.performance").error(
        f"Failed operation: {operation_name} after {duration:.3f}s - {error}",
        extra={"extra_fields": {
            "operation": operation_name,
            "duration": duration,
            "status": "error",
            "error_type": type(error).__name__,
            "error_message": str(error)
        }},
        exc_info=True
    )


def log_performance(operation_name: str):
    """Decorator to log performance metrics for sync or async operations."""
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record_failure(operation_name, start_time, e)
                    raise
                _record_success(operation_name, start_time)
                return result

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record_failure(operation_name, start_time, e)
                raise
            _record_success(operation_name, start_time)
            return result

        return wrapper
    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Context manager to log operations with custom fields."""
    logger = std_logging.getLogger("speckit.operations")
    start_time = time.time()

    logger.debug(f"Starting operation: {operation_name}", extra={"extra_fields": {
        "operation": operation_name,
        "status": "started",
        **extra_fields
    }})

    try:
        yield
    except Exception as e:
        duration = time.time() - start_time
        logger.error(f"Failed operation: {operation_name} after {duration:.3f}s - {e}", extra={"extra_fields": {
            "operation": operation_name,
            "status": "failed",
            "duration": duration,
            "error_type": type(e).__name__,
            "error_message": str(e),
            **extra_fields
        }}, exc_info=True)
        raise

    duration = time.time() - start_time
    logger.debug(f"Completed operation: {operation_name} in {duration:.3f}s", extra={"extra_fields": {
        "operation": operation_name,
        "status": "completed",
        "duration": duration,
        **extra_fields
    }})


class ObservabilityHooks:
    """Observability hooks for workflow status events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., None]]] = {}
        self.logger = std_logging.getLogger("speckit.observability")

    def register_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        """Register a callback for a specific event type."""
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Trigger all callbacks for a specific event type."""
        if event_type in self.hooks:
            self.logger.debug(f"Triggering {len(self.hooks[event_type])} hooks for event: {event_type}")
            for hook in list(self.hooks[event_type]):
                try:
                    hook(**data)
                except Exception as e:
                    self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_workflow_event(self, event_type: str, branch_key: Optional[str] = None, **data) -> None:
        """Log a workflow event and trigger hooks."""
        event_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "branch_key": branch_key,
            **data
        }

        self.logger.info(f"Workflow event: {event_type}", extra={"extra_fields": event_data})

        hook_data = {k: v for k, v in event_data.items() if k != "event_type"}
        self.trigger_hooks(event_type, **hook_data)


# Global observability hooks instance
observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log an error with rich context information."""
    logger = std_logging.getLogger("speckit.errors")

    error_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **extra_fields
    }

    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": error_data},
        exc_info=True
    )


def log_history_append(branch_key: str, appended: int, suppressed: int, **extra_fields):
    """Log a history append, including how many duplicates were dropped."""
    observability_hooks.log_workflow_event(
        "history_appended",
        branch_key=branch_key,
        appended=appended,
        suppressed=suppressed,
        **extra_fields
    )


def log_snapshot_built(branch_key: Optional[str], status_source: str, artifact_count: int, **extra_fields):
    """Log a completed status snapshot."""
    observability_hooks.log_workflow_event(
        "snapshot_built",
        branch_key=branch_key,
        status_source=status_source,
        artifact_count=artifact_count,
        **extra_fields
    )
