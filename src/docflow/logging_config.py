"""
Logging setup for docflow.

Call ``setup_logging()`` once at the entry point; modules log through
``logging.getLogger(__name__)`` and pass context with ``extra=``::

    logger.info("Job completed", extra={"session_id": sid, "job_id": jid})

Environment:
    LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default INFO).
    LOG_FORMAT: ``json`` or ``text`` (default text).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the pipeline context fields."""

    EXTRA_FIELDS = frozenset(
        {
            "session_id",
            "job_id",
            "operation_id",
            "owner_id",
            "model_id",
            "state",
            "status",
            "delay",
            "attempt",
            "tokens",
            "queue_length",
            "path",
            "prefix",
            "count",
            "performed_by",
            "error",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    def __init__(self) -> None:
        super().__init__(self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{field}={getattr(record, field)}"
            for field in sorted(JSONFormatter.EXTRA_FIELDS)
            if getattr(record, field, None) is not None
        ]
        return f"{message} | {' '.join(context)}" if context else message


def get_log_level() -> int:
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_format() -> str:
    return os.getenv("LOG_FORMAT", "text").lower()


_logging_initialized = False


def setup_logging() -> None:
    """Configure the root logger once; later calls are no-ops."""

    global _logging_initialized
    if _logging_initialized:
        return

    log_level = get_log_level()
    if get_log_format() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = HumanReadableFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("pypdf").setLevel(logging.ERROR)

    _logging_initialized = True
