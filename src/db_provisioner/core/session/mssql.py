"""SQL Server sessions over SQLAlchemy and pyodbc.

The connection runs in autocommit mode because ``CREATE DATABASE`` and
login DDL cannot run inside a user transaction, and it targets ``master``
so the session does not depend on the database it is about to create.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.pool import NullPool

from db_provisioner.core.base.results import ServerEndpoint
from db_provisioner.core.config.models import MssqlConnectionConfig
from db_provisioner.core.session.base import Params
from db_provisioner.utils.logging import get_logger

logger = get_logger(__name__)

# Quoted identifiers, string literals and comments are copied verbatim; a
# ":name" outside them is a bound parameter.
_TOKENS = re.compile(
    r"(\[(?:[^\]]|\]\])*\]|'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|--[^\n]*)"
    r"|(?<![:\w]):(\w+)"
)


def to_qmark(
    sql: str, params: Optional[Mapping[str, Any]]
) -> Tuple[str, Tuple[Any, ...]]:
    """Rewrite ``:name`` parameters as positional ``?`` markers.

    Colons inside bracketed identifiers, string literals and comments are
    left alone, so names such as ``[:orders]`` and passwords containing
    ``:`` reach the server unchanged.

    Args:
        sql: Statement text with ``:name`` parameters
        params: Values by parameter name

    Returns:
        The ``?`` statement and the values in marker order

    Raises:
        ValueError: If the statement names a parameter with no value
    """
    values: List[Any] = []
    supplied = params or {}

    def replace(match: "re.Match[str]") -> str:
        if match.group(1) is not None:
            return match.group(1)
        name = match.group(2)
        if name not in supplied:
            raise ValueError(f"No value supplied for parameter :{name}")
        values.append(supplied[name])
        return "?"

    return _TOKENS.sub(replace, sql), tuple(values)


def build_mssql_url(endpoint: ServerEndpoint, config: MssqlConnectionConfig) -> URL:
    """Build the ``mssql+pyodbc`` URL for an endpoint.

    Args:
        endpoint: Server endpoint; its address is the ODBC server name
        config: SQL Server connection options

    Returns:
        SQLAlchemy URL targeting the ``master`` database
    """
    query: Dict[str, str] = {"driver": config.driver}
    if config.trusted_connection:
        query["Trusted_Connection"] = "yes"
    if config.encrypt is not None:
        query["Encrypt"] = "yes" if config.encrypt else "no"
    if config.trust_server_certificate:
        query["TrustServerCertificate"] = "yes"
    query.update(config.query)

    return URL.create(
        "mssql+pyodbc",
        username=None if config.trusted_connection else config.username,
        password=None if config.trusted_connection else config.password,
        host=endpoint.address,
        port=config.port,
        database="master",
        query=query,
    )


class SqlAlchemySession:
    """ServerSession backed by one SQLAlchemy connection.

    Attributes:
        engine: Engine owning the connection (disposed on close)
        connection: Autocommit connection
    """

    def __init__(self, engine: Engine, connection: Connection) -> None:
        """Initialize the session with an open connection."""
        self.engine = engine
        self.connection = connection

    def execute(
        self, sql: str, params: Optional[Params] = None
    ) -> List[Mapping[str, Any]]:
        """Run a statement with named bound parameters.

        The text goes to the driver as written (``?`` markers, pyodbc's
        paramstyle), bypassing SQLAlchemy's own ``:name`` parsing.
        """
        statement, values = to_qmark(sql, dict(params or {}))
        if values:
            result = self.connection.exec_driver_sql(statement, values)
        else:
            result = self.connection.exec_driver_sql(statement)
        if not result.returns_rows:
            return []
        return [dict(row._mapping) for row in result]

    def close(self) -> None:
        """Close the connection and dispose the engine."""
        try:
            self.connection.close()
        finally:
            self.engine.dispose()


def connect_mssql(
    endpoint: ServerEndpoint, config: MssqlConnectionConfig
) -> SqlAlchemySession:
    """Open an autocommit session on ``master``.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: If the server cannot be reached
    """
    url = build_mssql_url(endpoint, config)
    logger.debug(
        "Connecting to SQL Server",
        extra={"endpoint": endpoint.address, "driver": config.driver},
    )
    engine = create_engine(
        url,
        poolclass=NullPool,
        connect_args={"timeout": config.login_timeout},
    )
    try:
        connection = engine.connect().execution_options(isolation_level="AUTOCOMMIT")
    except Exception:
        engine.dispose()
        raise
    return SqlAlchemySession(engine, connection)
