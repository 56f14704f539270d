"""Pydantic models for type-safe configuration.

This module defines Pydantic models for all configuration of a
provisioning run. These models provide:
- Type safety with automatic validation
- Default values matching a local development install
- Documentation via field descriptions

Models:
    ServiceConfig: How to check and start the database service
    MssqlConnectionConfig: SQL Server connection options
    SnowflakeConnectionConfig: Snowflake connection options
    ProvisioningConfig: Top-level configuration
"""

import getpass
import os
import sys
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db_provisioner.core.base.results import Principal, ServerEndpoint

DEFAULT_ENDPOINT = "(localdb)\\MSSQLLocalDB"
DEFAULT_DATABASE = "AppDatabase"
DEFAULT_ODBC_DRIVER = "ODBC Driver 17 for SQL Server"

ControllerKind = Literal["auto", "localdb", "windows-service", "systemd", "none"]


def current_identity() -> str:
    """Return the invoking operator's identity.

    On Windows this is ``DOMAIN\\user`` (the form SQL Server expects for
    Windows logins); elsewhere it is the login name.
    """
    if sys.platform.startswith("win"):
        user = os.environ.get("USERNAME") or getpass.getuser()
        domain = os.environ.get("USERDOMAIN")
        return f"{domain}\\{user}" if domain else user
    return getpass.getuser()


class ServiceConfig(BaseModel):
    """Service control configuration.

    Attributes:
        controller: Controller kind; ``auto`` picks one from the endpoint
        name: Service, unit or LocalDB instance name (derived when omitted)
    """

    controller: ControllerKind = Field("auto", description="Service controller kind")
    name: Optional[str] = Field(None, description="Service/unit/instance name")

    model_config = ConfigDict(extra="forbid")


class MssqlConnectionConfig(BaseModel):
    """SQL Server connection configuration.

    Attributes:
        driver: ODBC driver name
        trusted_connection: Use Windows integrated authentication
        username: SQL login used to connect (when not trusted)
        password: Password for ``username``
        port: Optional TCP port
        encrypt: Optional ODBC ``Encrypt`` setting
        trust_server_certificate: ODBC ``TrustServerCertificate`` setting
        login_timeout: Seconds to wait when opening the connection
        query: Additional ODBC connection attributes
    """

    driver: str = Field(DEFAULT_ODBC_DRIVER, description="ODBC driver name")
    trusted_connection: bool = Field(True, description="Integrated authentication")
    username: Optional[str] = Field(None, description="SQL login for connecting")
    password: Optional[str] = Field(None, description="Password", repr=False)
    port: Optional[int] = Field(None, ge=1, le=65535, description="TCP port")
    encrypt: Optional[bool] = Field(None, description="ODBC Encrypt attribute")
    trust_server_certificate: bool = Field(
        True, description="ODBC TrustServerCertificate attribute"
    )
    login_timeout: int = Field(5, ge=1, description="Connection timeout in seconds")
    query: Dict[str, str] = Field(
        default_factory=dict, description="Additional ODBC attributes"
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "MssqlConnectionConfig":
        """Require a username when integrated authentication is off."""
        if not self.trusted_connection and not self.username:
            raise ValueError("username is required when trusted_connection is false")
        return self

    model_config = ConfigDict(extra="forbid")


class SnowflakeConnectionConfig(BaseModel):
    """Snowflake connection configuration.

    The endpoint address is used as the account identifier.

    Attributes:
        user: Snowflake user to connect as
        password: Optional password for authentication
        authenticator: Optional authenticator (e.g., 'externalbrowser')
        role: Role to use; it must be able to create databases, users and roles
        warehouse: Optional warehouse for the session
        session_parameters: Optional session parameters
    """

    user: Optional[str] = Field(None, description="Snowflake username")
    password: Optional[str] = Field(None, description="Password", repr=False)
    authenticator: Optional[str] = Field(None, description="Authentication method")
    role: Optional[str] = Field(None, description="Role to use")
    warehouse: Optional[str] = Field(None, description="Warehouse to use")
    session_parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Additional session parameters"
    )

    model_config = ConfigDict(extra="forbid")


class ProvisioningConfig(BaseModel):
    """Top-level provisioning configuration.

    Attributes:
        backend: Server family (``mssql`` or ``snowflake``)
        endpoint: Server address
        database: Target database name
        principal: Identity to authorize; defaults to the invoking identity
        principal_password: Password used only when a SQL login or a
            Snowflake user must be created
        startup_timeout: Seconds to wait for a stopped server to start
        poll_interval: Seconds between running-state checks while starting
        service: Service control configuration
        mssql: SQL Server connection options
        snowflake: Snowflake connection options
        transcript_path: Optional file receiving a transcript of commands
    """

    backend: Literal["mssql", "snowflake"] = Field("mssql", description="Backend")
    endpoint: str = Field(DEFAULT_ENDPOINT, description="Server address")
    database: str = Field(DEFAULT_DATABASE, description="Target database")
    principal: Optional[str] = Field(None, description="Principal to authorize")
    principal_password: Optional[str] = Field(
        None, description="Password for a new login", repr=False
    )
    startup_timeout: float = Field(10.0, gt=0, description="Startup wait in seconds")
    poll_interval: float = Field(0.5, gt=0, description="Poll interval in seconds")
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    mssql: MssqlConnectionConfig = Field(default_factory=MssqlConnectionConfig)
    snowflake: SnowflakeConnectionConfig = Field(
        default_factory=SnowflakeConnectionConfig
    )
    transcript_path: Optional[str] = Field(None, description="Transcript file")

    @field_validator("endpoint", "database")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty names.

        Raises:
            ValueError: If the value is empty or contains NUL characters
        """
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty")
        if "\x00" in v:
            raise ValueError("Value cannot contain NUL characters")
        return v

    @field_validator("principal")
    @classmethod
    def validate_principal(cls, v: Optional[str]) -> Optional[str]:
        """Normalize an explicit principal; blank means the invoking identity."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def resolve_principal(self) -> "ProvisioningConfig":
        """Resolve the default principal once, at configuration time."""
        if self.principal is None:
            self.principal = current_identity()
        return self

    def server_endpoint(self) -> ServerEndpoint:
        """Build the ServerEndpoint this configuration targets."""
        return ServerEndpoint(address=self.endpoint, backend=self.backend)

    def target_principal(self) -> Principal:
        """Build the Principal this configuration authorizes."""
        return Principal(name=self.principal or "", password=self.principal_password)

    model_config = ConfigDict(extra="forbid", validate_assignment=False)
