"""Configuration management for the provisioning tool.

This module provides type-safe configuration loading and validation using
Pydantic models. It supports loading from YAML files, environment variables,
and command-line overrides.

Classes:
    ConfigLoader: Load and merge configurations from multiple sources

Pydantic Models:
    ProvisioningConfig: Top-level provisioning configuration
    ServiceConfig: Service control configuration
    MssqlConnectionConfig: SQL Server connection configuration
    SnowflakeConnectionConfig: Snowflake connection configuration
"""

from db_provisioner.core.config.loader import ConfigLoader
from db_provisioner.core.config.models import (
    DEFAULT_DATABASE,
    DEFAULT_ENDPOINT,
    DEFAULT_ODBC_DRIVER,
    MssqlConnectionConfig,
    ProvisioningConfig,
    ServiceConfig,
    SnowflakeConnectionConfig,
    current_identity,
)

CONFIG_FILE = "provisioning.yaml"
ENV_PREFIX = "DB_PROVISION_"

__all__ = [
    "ConfigLoader",
    "ProvisioningConfig",
    "ServiceConfig",
    "MssqlConnectionConfig",
    "SnowflakeConnectionConfig",
    "current_identity",
    "DEFAULT_ENDPOINT",
    "DEFAULT_DATABASE",
    "DEFAULT_ODBC_DRIVER",
    "CONFIG_FILE",
    "ENV_PREFIX",
]
