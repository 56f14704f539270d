"""Structured logging with per-run context.

Every record emitted through a StructuredLogger carries a ``context``
mapping: the fields bound by enclosing LogContext blocks (the Provisioner
binds ``run_id``, ``endpoint``, ``database`` and ``principal`` for the
whole run) merged with the call's ``extra`` fields.

Classes:
    StructuredLogger: Logger wrapper attaching the current context
    LogContext: Context manager binding fields for a block
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Literal, Optional

from db_provisioner.utils.logging.formatters import ContextFormatter, JSONFormatter

ROOT_LOGGER_NAME = "db_provisioner"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def new_run_id() -> str:
    """Return a short random identifier for one provisioning run."""
    return uuid.uuid4().hex[:12]


def current_context() -> Dict[str, Any]:
    """Return a copy of the fields bound by the enclosing LogContext blocks."""
    return dict(_log_context.get())


class StructuredLogger:
    """Logger wrapper that attaches the current log context.

    Attributes:
        name: Logger name
        logger: Underlying Python logger

    Example:
        >>> logger = get_logger(__name__)
        >>> with LogContext(endpoint="(localdb)\\\\MSSQLLocalDB"):
        ...     logger.info("Checking server state", extra={"step": "reachability"})
    """

    def __init__(self, name: str) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name (typically __name__)
        """
        self.name = name
        self.logger = logging.getLogger(name)

        # Package loggers propagate to the package root, which
        # configure_logging() owns; anything else gets a default handler.
        if not self.logger.handlers and not _is_package_logger(name):
            handler = logging.StreamHandler()
            handler.setFormatter(ContextFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _log(
        self,
        level: int,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        context = current_context()
        if extra:
            context.update(extra)
        self.logger.log(level, message, extra={"context": context}, exc_info=exc_info)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a debug message."""
        self._log(logging.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log an info message."""
        self._log(logging.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a warning message."""
        self._log(logging.WARNING, message, extra)

    def error(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        """Log an error message.

        Args:
            message: Log message
            extra: Optional extra context
            exc_info: Whether to include exception info
        """
        self._log(logging.ERROR, message, extra, exc_info)

    def exception(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log an error with the active exception's traceback."""
        self._log(logging.ERROR, message, extra, exc_info=True)


class LogContext:
    """Bind context fields for the duration of a block.

    Blocks nest; leaving a block restores the fields bound before it.

    Example:
        >>> with LogContext(run_id=new_run_id(), database="AppDatabase"):
        ...     logger.info("Provisioning")
        ...     with LogContext(step="owner_role"):
        ...         logger.info("Granting owner role")
    """

    def __init__(self, **context: Any) -> None:
        """Initialize the log context.

        Args:
            **context: Context fields as keyword arguments
        """
        self.context = context
        self._token: Optional[Any] = None

    def __enter__(self) -> "LogContext":
        """Bind the fields."""
        merged = current_context()
        merged.update(self.context)
        self._token = _log_context.set(merged)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> Literal[False]:
        """Restore the fields bound before this block."""
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None
        return False


def _is_package_logger(name: str) -> bool:
    return name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}.")


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)


def configure_logging(level: int = logging.WARNING, fmt: str = "text") -> None:
    """Install a single stderr handler on the package root logger.

    Calling this again replaces the previous handler, so the command line
    can reconfigure verbosity without duplicating output.

    Args:
        level: Logging level for all package loggers
        fmt: ``text`` for ContextFormatter output, ``json`` for JSONFormatter

    Raises:
        ValueError: If the format is unknown
    """
    if fmt not in ("text", "json"):
        raise ValueError(f"Invalid log format: {fmt}. Must be one of: text, json")

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ContextFormatter())
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
