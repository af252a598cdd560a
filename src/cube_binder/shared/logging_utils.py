"""
Structured logging for binding and cube assembly events.

Every entry is a single JSON object with a timestamp, level, logger name,
message and correlation id, plus the keyword context of the call. The
correlation id is held in a context variable, so bindings running
concurrently on different tasks keep their own id while sharing one
module-level logger.
"""
import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Optional


class StructuredLogger:
    """Structured logger with a task-local correlation ID."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)
        self._correlation: ContextVar[Optional[str]] = ContextVar(
            f"correlation_id:{logger_name}", default=None
        )

    @property
    def correlation_id(self) -> Optional[str]:
        """Correlation ID of the current task, if one is set."""
        return self._correlation.get()

    def set_correlation_id(self, correlation_id: str):
        """Set correlation ID for the current task."""
        self._correlation.set(correlation_id)

    def clear_correlation_id(self):
        """Clear correlation ID for the current task."""
        self._correlation.set(None)

    def generate_correlation_id(self) -> str:
        """Generate new correlation ID."""
        return f"CORR_{uuid.uuid4().hex[:12]}"

    @contextmanager
    def correlation_scope(self, correlation_id: str | None = None) -> Iterator[str]:
        """
        Tag every entry logged inside the block with one correlation ID.

        A new ID is generated unless one is given. The previous ID (if any)
        is restored on exit, including when the block raises.

        Example:
            >>> with structured_logger.correlation_scope() as corr_id:
            ...     structured_logger.info("Binding started", dimension_id=dim.id)
        """
        token = self._correlation.set(correlation_id or self.generate_correlation_id())
        try:
            yield self._correlation.get()
        finally:
            self._correlation.reset(token)

    def _format_message(self, level: str, message: str, **kwargs: Any) -> dict:
        """Build the JSON-ready entry for one event."""
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self.logger.name,
            "message": message,
            "correlation_id": self.correlation_id or "none",
        }

        # Enums, paths and datetimes in the context are stringified on dump
        if kwargs:
            entry["context"] = kwargs

        return entry

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any):
        if not self.logger.isEnabledFor(level):
            return
        entry = self._format_message(logging.getLevelName(level), message, **kwargs)
        self.logger.log(level, json.dumps(entry, default=str), exc_info=exc_info)

    def info(self, message: str, **kwargs):
        """Log info with structured data."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning with structured data."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        """Log error with structured data, optionally with the active traceback."""
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug with structured data."""
        self._log(logging.DEBUG, message, **kwargs)


def get_structured_logger(name: str) -> StructuredLogger:
    """Get or create structured logger."""
    return StructuredLogger(name)
