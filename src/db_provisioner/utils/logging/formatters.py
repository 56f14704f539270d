"""Log formatters for provisioning runs.

Both formatters render the structured context attached by StructuredLogger.
Run-level fields (run id, endpoint, database, principal, step) come first
so lines from one run line up; fields whose value is None are left out.

Classes:
    JSONFormatter: One JSON object per record
    ContextFormatter: Human-readable line with a ``[key=value, ...]`` suffix
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

#: Context fields rendered first, in this order.
RUN_FIELDS = ("run_id", "endpoint", "database", "principal", "step")

_STANDARD_ATTRIBUTES = frozenset(
    logging.makeLogRecord({}).__dict__.keys() | {"message", "asctime", "context"}
)


def ordered_context(context: Mapping[str, Any]) -> Dict[str, Any]:
    """Return context with run fields first and None values dropped."""
    ordered: Dict[str, Any] = {}
    for key in RUN_FIELDS:
        if context.get(key) is not None:
            ordered[key] = context[key]
    for key, value in context.items():
        if key not in ordered and value is not None:
            ordered[key] = value
    return ordered


class JSONFormatter(logging.Formatter):
    """Format log records as JSON.

    Example output:
        {
            "timestamp": "2026-10-16T21:30:45.123456+00:00",
            "level": "INFO",
            "logger": "db_provisioner.provisioner",
            "message": "Created database AppDatabase",
            "context": {
                "run_id": "3f2c9a1b7e4d",
                "database": "AppDatabase",
                "step": "database"
            }
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = ordered_context(context)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # stdlib ``extra=`` fields from third-party callers
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRIBUTES:
                entry[key] = value

        return json.dumps(entry, default=str)


class ContextFormatter(logging.Formatter):
    """Format log records as text with a context suffix.

    Example output:
        2026-10-16 21:30:45 INFO db_provisioner.provisioner: Created database AppDatabase [run_id=3f2c9a1b7e4d, step=database]
    """

    def __init__(
        self,
        fmt: str = "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt: str = "%Y-%m-%d %H:%M:%S",
    ) -> None:
        """Initialize the formatter."""
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with its context."""
        line = super().format(record)
        context = ordered_context(getattr(record, "context", None) or {})
        if not context:
            return line
        suffix = ", ".join(f"{key}={value}" for key, value in context.items())
        # keep the traceback, if any, after the context
        head, sep, tail = line.partition("\n")
        return f"{head} [{suffix}]{sep}{tail}"
