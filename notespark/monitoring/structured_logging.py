"""
Structured logging and operation tracing.

JSON log output for deployments that ship logs to an aggregator, a tracing
context manager that measures duration and memory delta of pipeline
operations, and a psutil snapshot used by health reports.
"""

import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

import psutil

logger = logging.getLogger(__name__)

SERVICE_NAME = "notespark"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_record.update(extra_fields)

        return json.dumps(log_record, default=str)


def configure_json_logging(level: int = logging.INFO, service_name: str = SERVICE_NAME) -> None:
    """Route the root logger through a single JSON handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(service_name))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


class StructuredLogger:
    """
    Logger wrapper attaching a correlation id and extra fields to records.

    Fields passed as keyword arguments end up as top-level JSON keys when the
    JsonFormatter is installed; with a plain formatter only the message shows.
    """

    def __init__(self, name: str = SERVICE_NAME, correlation_id: Optional[str] = None):
        self._logger = logging.getLogger(name)
        self.correlation_id = correlation_id

    def log(self, level: int, message: str, **fields) -> None:
        extra_fields = dict(fields)
        if self.correlation_id:
            extra_fields["correlation_id"] = self.correlation_id
        self._logger.log(level, message, extra={"extra_fields": extra_fields})

    def info(self, message: str, **fields) -> None:
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields) -> None:
        self.log(logging.ERROR, message, **fields)


@dataclass
class OperationTrace:
    """Timing and memory figures for one traced operation."""
    correlation_id: str
    operation: str
    start_time: float
    duration_ms: float = 0.0
    memory_start_mb: float = 0.0
    memory_delta_mb: float = 0.0
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@contextmanager
def trace_operation(operation: str, correlation_id: Optional[str] = None, **metadata) -> Iterator[OperationTrace]:
    """
    Trace an operation's duration and memory delta.

    Args:
        operation: Name of the operation
        correlation_id: Optional correlation ID
        **metadata: Additional fields logged on completion

    Yields:
        OperationTrace, filled in when the block exits
    """
    trace = OperationTrace(
        correlation_id=correlation_id or str(uuid.uuid4()),
        operation=operation,
        start_time=time.time(),
        memory_start_mb=get_memory_mb(),
        metadata=metadata
    )
    structured = StructuredLogger(correlation_id=trace.correlation_id)

    try:
        yield trace
    except Exception as e:
        trace.success = False
        trace.error = str(e)
        structured.error(f"Operation failed: {operation}", operation=operation, error=str(e))
        raise
    finally:
        trace.duration_ms = (time.time() - trace.start_time) * 1000
        trace.memory_delta_mb = get_memory_mb() - trace.memory_start_mb
        structured.info(
            f"Completed operation: {operation}",
            operation=operation,
            duration_ms=round(trace.duration_ms, 2),
            memory_delta_mb=round(trace.memory_delta_mb, 2),
            success=trace.success,
            **trace.metadata
        )


def get_memory_mb() -> float:
    """Current process RSS in MB."""
    try:
        process = psutil.Process(os.getpid())
        return process.memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


def system_snapshot() -> Dict[str, Any]:
    """Process and host memory figures for health reports."""
    memory = psutil.virtual_memory()
    return {
        "memory_used_mb": round(get_memory_mb(), 2),
        "memory_available_mb": round(memory.available / (1024 * 1024), 2),
        "memory_percent": memory.percent,
    }
