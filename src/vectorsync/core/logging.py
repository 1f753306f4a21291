"""
Logging utilities for vectorsync.

Provides structured logging with correlation context so a vector refresh
can be traced from the mutation that caused it, through the queued job,
to the follow-up commit (resource → record → job → run).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = [
    "resource", "record_id", "job_id", "run_id", "correlation_id",
    "worker_id", "strategy", "job_type", "attempt",
]


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Correlation fields if present (resource, record_id, job_id, ...)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with correlation context.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [resource=X record_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for name in ["resource", "record_id", "job_id"]:
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def configure_logging(
    level: Optional[int] = None,
    structured: Optional[bool] = None,
    include_timestamp: bool = True,
) -> None:
    """
    Configure the ``vectorsync`` package logger.

    Level and format default to ``VECTORSYNC_LOG_LEVEL`` and
    ``VECTORSYNC_LOG_JSON`` when not given.

    Example:
        >>> from vectorsync.core.logging import configure_logging
        >>> configure_logging(level=logging.DEBUG, structured=True)
    """
    if level is None:
        level_name = os.environ.get("VECTORSYNC_LOG_LEVEL", "INFO").upper()
        level = getattr(logging, level_name, logging.INFO)
    if structured is None:
        structured = os.environ.get("VECTORSYNC_LOG_JSON", "false").lower() == "true"

    package_logger = logging.getLogger("vectorsync")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        if structured:
            handler.setFormatter(StructuredFormatter(include_timestamp=include_timestamp))
        else:
            handler.setFormatter(HumanReadableFormatter(include_timestamp=include_timestamp))
        package_logger.addHandler(handler)


class CorrelationContext:
    """
    Context manager for adding correlation fields to log records.

    Example:
        >>> with CorrelationContext(resource="author", record_id="42"):
        ...     log_with_context(logger, logging.INFO, "Refreshing vectors")
    """

    _current: Optional["CorrelationContext"] = None

    def __init__(self, **fields: Any):
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._previous: Optional["CorrelationContext"] = None

    def __enter__(self) -> "CorrelationContext":
        self._previous = CorrelationContext._current
        if self._previous is not None:
            merged = dict(self._previous.context)
            merged.update(self.context)
            self.context = merged
        CorrelationContext._current = self
        return self

    def __exit__(self, *args) -> None:
        CorrelationContext._current = self._previous

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current correlation context."""
        if cls._current is None:
            return {}
        return cls._current.context.copy()


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log a message with the current correlation context merged with ``extra``.
    """
    context = CorrelationContext.get_current()
    context.update(extra)
    logger.log(level, message, extra=context)
