"""
Logging configuration for the workflow engine.

Supports a compact text format for local development and a JSON format for
log aggregation.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SimpleFormatter(logging.Formatter):
    """
    Plain text formatter.
    Example: INFO:     2025-08-11 14:03:25 - payflow_engine.engine - [workflow_executor.py:123] [Exec:abc123] - message
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        file_location = f"{record.filename}:{record.lineno}"

        execution_id = ""
        if getattr(record, "execution_id", None):
            execution_id = f" [Exec:{record.execution_id}]"

        formatted = (
            f"{record.levelname}:     {timestamp} - {record.name} - "
            f"[{file_location}]{execution_id} - {record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per line, extra fields kept under 'extra'."""

    SKIP_ATTRS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName",
        "relativeCreated", "thread", "threadName", "exc_info",
        "exc_text", "stack_info", "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "file": f"{record.filename}:{record.lineno}",
            "function": record.funcName,
        }

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.SKIP_ATTRS and not key.startswith("_")
        }
        if extra_fields:
            log_obj["extra"] = extra_fields

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Configure root logging for a service.

    Args:
        service_name: Name of the service (e.g., "payflow-api")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "simple", "json" or "standard"

    Returns:
        Logger for the service
    """
    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "simple")
    log_level = os.getenv("LOG_LEVEL", log_level).upper()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level))

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    elif log_format == "simple":
        formatter = SimpleFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(levelname)s:     %(asctime)s - %(name)s - [%(filename)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    _configure_third_party_loggers()

    logger = logging.getLogger(service_name)
    logger.info(f"Logging configured for {service_name} with level={log_level}, format={log_format}")
    return logger


def _configure_third_party_loggers():
    """Reduce noise from chatty libraries."""
    noisy_loggers = [
        "uvicorn",
        "uvicorn.error",
        "httpx",
        "httpcore",
        "openai",
        "sqlalchemy.engine",
        "asyncio",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.access").setLevel(logging.ERROR)
