"""Custom exception hierarchy for the provisioning tool.

Exception Hierarchy:
    ProvisioningError (base)
    ├── ConfigurationError
    ├── SessionError
    ├── ServerCommandError
    ├── EndpointUnreachableError
    ├── CreateFailedError
    └── GrantFailedError
"""

from db_provisioner.core.exceptions.errors import (
    ConfigurationError,
    CreateFailedError,
    EndpointUnreachableError,
    GrantFailedError,
    ProvisioningError,
    ServerCommandError,
    SessionError,
    server_message,
)

__all__ = [
    # Base
    "ProvisioningError",
    "server_message",
    # Configuration
    "ConfigurationError",
    # Session
    "SessionError",
    "ServerCommandError",
    # Steps
    "EndpointUnreachableError",
    "CreateFailedError",
    "GrantFailedError",
]
