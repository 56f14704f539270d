"""Custom exception classes for the provisioning tool.

This module defines all custom exceptions used throughout the package.
Each exception includes a detailed error message, optional context
information for debugging, the provisioning step that raised it and a
suggested remediation for the operator.

All exceptions inherit from ProvisioningError, making it easy to catch all
provisioning errors with a single except clause.
"""

from typing import Any, Dict, Optional


class ProvisioningError(Exception):
    """Base exception for all provisioning errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context
        original_error: Optional original exception that caused this error
        step: Provisioning step that failed (reachability, database, ...)
        remediation: Optional hint telling the operator what to do next
        exit_code: Process exit code the command line reports for this error
    """

    exit_code = 1
    default_step = "provision"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        *,
        step: Optional[str] = None,
        remediation: Optional[str] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            context: Optional context dictionary
            original_error: Optional original exception
            step: Optional name of the failing step
            remediation: Optional operator-facing remediation hint
        """
        self.message = message
        self.context = context or {}
        self.original_error = original_error
        self.step = step or self.default_step
        self.remediation = remediation

        # Build full error message
        full_message = message
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            full_message = f"{message} (Context: {context_str})"
        if original_error:
            full_message = f"{full_message} (Caused by: {str(original_error)})"

        super().__init__(full_message)

    @property
    def reason(self) -> str:
        """Return the underlying server message, or the error message."""
        if self.original_error is not None:
            return server_message(self.original_error)
        return self.message


def server_message(exc: BaseException) -> str:
    """Extract the verbatim server message from a driver exception.

    SQLAlchemy wraps DBAPI errors and keeps the driver error on ``orig``;
    ServerCommandError keeps it on ``original_error``. Both are unwrapped so
    the message reported to the operator is the one the server produced.
    """
    seen = set()
    current: BaseException = exc
    while id(current) not in seen:
        seen.add(id(current))
        inner = getattr(current, "original_error", None) or getattr(
            current, "orig", None
        )
        if not isinstance(inner, BaseException):
            break
        current = inner
    text = getattr(current, "message", None)
    if not isinstance(text, str) or not text:
        text = str(current)
    return text.strip()


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ProvisioningError):
    """Exception raised for configuration errors.

    This exception is raised when configuration is invalid or required
    input (endpoint, database name, principal) is missing.
    """

    exit_code = 2
    default_step = "configuration"


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(ProvisioningError):
    """Exception raised when a server session cannot be opened or closed."""

    default_step = "session"


class ServerCommandError(ProvisioningError):
    """Exception raised when a statement sent to the server fails.

    The failing SQL text is kept on ``sql`` (with secrets redacted) so the
    step-level error can report exactly what was attempted.
    """

    def __init__(
        self,
        message: str,
        sql: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        """Initialize the exception with the failing statement."""
        super().__init__(message, context, original_error)
        self.sql = sql


# =============================================================================
# Step Errors
# =============================================================================


class EndpointUnreachableError(ProvisioningError):
    """Exception raised when the database server cannot be found or started.

    Fatal: no database or authorization step is attempted afterwards.
    """

    exit_code = 3
    default_step = "reachability"


class CreateFailedError(ProvisioningError):
    """Exception raised when database creation fails for a reason other than
    the database already existing."""

    exit_code = 4
    default_step = "database"


class GrantFailedError(ProvisioningError):
    """Exception raised when a login, user or role operation fails."""

    exit_code = 5
    default_step = "authorization"
