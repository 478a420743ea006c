"""
Structured Logging Configuration for crmflow

Provides JSON-formatted logging for production with:
- Run ID tracking (every log line emitted inside an automation run carries it)
- Request ID tracking for the HTTP API
- Structured fields (timestamp, level, message, context)
- Configurable log levels
- Console and file handlers
"""

import logging
import json
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from contextvars import ContextVar
import os

# Context variable to store the current run (execution log) ID across async calls
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)

# Context variable to store the HTTP request ID
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info', 'taskName',
}


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON.

    Includes:
    - timestamp (ISO 8601)
    - level
    - logger name
    - message
    - run_id (if inside an automation run)
    - additional context fields passed via ``extra``
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields added via logger.info("msg", extra={"key": "value"})
        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["context"] = extra_fields

        return json.dumps(log_data, ensure_ascii=True, default=str)


class StandardFormatter(logging.Formatter):
    """
    Standard formatter for development (human-readable).

    Format: [TIMESTAMP] LEVEL - logger - message (run_id)
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")
        base = f"[{timestamp}] {record.levelname:8s} - {record.name} - {record.getMessage()}"

        run_id = run_id_var.get()
        if run_id:
            base += f" (run_id={run_id})"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for crmflow.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, use JSON formatter (production), else standard formatter (dev)
        log_file: Optional file path to write logs to

    Environment Variables:
        LOG_LEVEL: Override log level (default: INFO)
        JSON_LOGS: If "true", enable JSON logging (default: false)
        LOG_FILE: File path for log output
    """
    level = os.getenv("LOG_LEVEL", level).upper()
    json_logs = os.getenv("JSON_LOGS", "true" if json_logs else "false").lower() == "true"
    log_file = os.getenv("LOG_FILE", log_file)

    numeric_level = getattr(logging, level, logging.INFO)
    formatter = JSONFormatter() if json_logs else StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "level": level,
            "json_logs": json_logs,
            "log_file": log_file or "none"
        }
    )


def set_run_id(run_id: Optional[str]):
    """
    Set the run ID for the current async context.

    Returns the ContextVar token so the caller can restore the previous value
    with ``reset_run_id``. Each asyncio task gets its own copy of the context,
    so concurrent runs never see each other's IDs.
    """
    return run_id_var.set(run_id)


def reset_run_id(token) -> None:
    """Restore the run ID that was active before ``set_run_id``."""
    run_id_var.reset(token)


def get_run_id() -> Optional[str]:
    """
    Get current run ID.

    Returns:
        Run ID if set, None otherwise
    """
    return run_id_var.get()


def set_request_id(request_id: str) -> None:
    """Set request ID for current context (one HTTP request)."""
    request_id_var.set(request_id)


def clear_request_id() -> None:
    request_id_var.set(None)
