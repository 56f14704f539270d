"""Core foundation for the provisioning tool.

This module provides the data model, configuration, session and exception
layers that the provisioning steps build on.

Submodules:
    base: Data model and tracking interfaces
    session: Server session management
    config: Configuration loading and validation
    exceptions: Custom exception hierarchy
"""

__all__ = [
    "base",
    "session",
    "config",
    "exceptions",
]
