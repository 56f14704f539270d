"""Server-specific statement builders.

Classes:
    Statement: A statement with bound parameters and a display form
    Dialect: Interface for statement building and error classification
    SqlServerDialect: Microsoft SQL Server and LocalDB
    SnowflakeDialect: Snowflake
"""

from typing import Optional

from db_provisioner.infrastructure.dialects.base import Dialect, Statement, row_value
from db_provisioner.infrastructure.dialects.mssql import SqlServerDialect
from db_provisioner.infrastructure.dialects.snowflake import SnowflakeDialect


def dialect_for(backend: str, *, admin_role: Optional[str] = None) -> Dialect:
    """Return the dialect for a backend name.

    Raises:
        ValueError: If the backend is unknown
    """
    if backend == "mssql":
        return SqlServerDialect()
    if backend == "snowflake":
        return SnowflakeDialect(admin_role=admin_role)
    raise ValueError(f"Invalid backend: {backend}. Must be one of: mssql, snowflake")


__all__ = [
    "Statement",
    "Dialect",
    "SqlServerDialect",
    "SnowflakeDialect",
    "dialect_for",
    "row_value",
]
