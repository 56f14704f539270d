"""Snowflake sessions over Snowpark.

Snowpark is imported only when a session is opened so that SQL Server runs
and unit tests do not need a Snowflake connection.
"""

from typing import Any, Dict, List, Mapping, Optional

from db_provisioner.core.base.results import ServerEndpoint
from db_provisioner.core.config.models import SnowflakeConnectionConfig
from db_provisioner.core.session.base import Params
from db_provisioner.utils.logging import get_logger

logger = get_logger(__name__)


def snowflake_session_config(
    endpoint: ServerEndpoint, config: SnowflakeConnectionConfig
) -> Dict[str, Any]:
    """Build ``Session.builder`` options; the endpoint is the account."""
    options: Dict[str, Any] = {
        "account": endpoint.address,
        "user": config.user,
        "password": config.password,
        "authenticator": config.authenticator,
        "role": config.role,
        "warehouse": config.warehouse,
    }
    if config.session_parameters:
        options["session_parameters"] = dict(config.session_parameters)
    # remove None values
    return {k: v for k, v in options.items() if v is not None}


class SnowparkSession:
    """ServerSession backed by a Snowpark ``Session``."""

    def __init__(self, session: Any) -> None:
        """Wrap an open Snowpark session."""
        if session is None:
            raise ValueError("Session cannot be None")
        self.session = session

    def execute(
        self, sql: str, params: Optional[Params] = None
    ) -> List[Mapping[str, Any]]:
        """Run a statement and collect its rows as dictionaries."""
        if params is None:
            dataframe = self.session.sql(sql)
        else:
            dataframe = self.session.sql(sql, params=params)
        return [_row_to_dict(row) for row in dataframe.collect()]

    def close(self) -> None:
        """Close the Snowpark session."""
        self.session.close()


def _row_to_dict(row: Any) -> Mapping[str, Any]:
    if isinstance(row, Mapping):
        return dict(row)
    as_dict = getattr(row, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    return dict(row)


def connect_snowflake(
    endpoint: ServerEndpoint, config: SnowflakeConnectionConfig
) -> SnowparkSession:
    """Open a Snowpark session on the endpoint's account.

    Raises:
        ValueError: If no user is configured
        RuntimeError: If snowflake.snowpark is not installed
    """
    if not config.user:
        raise ValueError("Snowflake user is required")
    try:
        from snowflake.snowpark import Session
    except ImportError as exc:  # pragma: no cover - dependency check
        raise RuntimeError(
            "snowflake.snowpark is required to provision Snowflake"
        ) from exc

    logger.debug(
        "Connecting to Snowflake",
        extra={"account": endpoint.address, "user": config.user, "role": config.role},
    )
    session = Session.builder.configs(
        snowflake_session_config(endpoint, config)
    ).create()
    return SnowparkSession(session)
