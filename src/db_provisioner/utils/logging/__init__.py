"""Structured logging for provisioning runs.

Classes:
    StructuredLogger: Logger wrapper attaching the current context
    LogContext: Context manager binding fields for a block
    JSONFormatter: One JSON object per record
    ContextFormatter: Human-readable line with context suffix
"""

from db_provisioner.utils.logging.formatters import ContextFormatter, JSONFormatter
from db_provisioner.utils.logging.logger import (
    LogContext,
    StructuredLogger,
    configure_logging,
    current_context,
    get_logger,
    new_run_id,
)

__all__ = [
    "StructuredLogger",
    "LogContext",
    "get_logger",
    "configure_logging",
    "current_context",
    "new_run_id",
    "JSONFormatter",
    "ContextFormatter",
]
