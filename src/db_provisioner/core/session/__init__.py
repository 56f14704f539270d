"""Server session management.

Classes:
    ServerSession: Protocol implemented by backend sessions
    SqlAlchemySession: SQL Server session over SQLAlchemy
    SnowparkSession: Snowflake session over Snowpark
"""

from db_provisioner.core.base.results import ServerEndpoint
from db_provisioner.core.config.models import ProvisioningConfig
from db_provisioner.core.exceptions import SessionError
from db_provisioner.core.session.base import ServerSession, scoped_session
from db_provisioner.core.session.mssql import (
    SqlAlchemySession,
    build_mssql_url,
    connect_mssql,
)
from db_provisioner.core.session.snowflake import (
    SnowparkSession,
    connect_snowflake,
    snowflake_session_config,
)


def connect(config: ProvisioningConfig, endpoint: ServerEndpoint) -> ServerSession:
    """Open a session on ``endpoint`` using the backend's connection options.

    Raises:
        SessionError: If the session cannot be opened
    """
    try:
        if endpoint.backend == "snowflake":
            return connect_snowflake(endpoint, config.snowflake)
        return connect_mssql(endpoint, config.mssql)
    except Exception as exc:
        raise SessionError(
            "Failed to open server session",
            context={"endpoint": endpoint.address, "backend": endpoint.backend},
            original_error=exc,
        ) from exc


__all__ = [
    "ServerSession",
    "SqlAlchemySession",
    "SnowparkSession",
    "build_mssql_url",
    "connect",
    "connect_mssql",
    "connect_snowflake",
    "scoped_session",
    "snowflake_session_config",
]
