"""Database provisioning.

This module creates the target database when it is missing. The create is
sent without an existence guard so that when two runs race, exactly one of
them reports the database as created and the other sees the server's
"already exists" rejection, which is treated as success.

Classes:
    DatabaseProvisioner: Check for and create databases
"""

from typing import Optional

from db_provisioner.core.base.results import DatabaseStatus
from db_provisioner.core.base.tracking import ExecutionEventTracker
from db_provisioner.core.exceptions import CreateFailedError, ServerCommandError
from db_provisioner.core.session import ServerSession
from db_provisioner.infrastructure.dialects import Dialect
from db_provisioner.infrastructure.provisioning.base import BaseProvisioner


class DatabaseProvisioner(BaseProvisioner):
    """Provision databases idempotently.

    All operations are idempotent - running them multiple times produces
    the same result.

    Example:
        >>> provisioner = DatabaseProvisioner(session, SqlServerDialect())
        >>> provisioner.ensure_database("AppDatabase")
        <DatabaseStatus.CREATED: 'created'>
    """

    def __init__(
        self,
        session: ServerSession,
        dialect: Dialect,
        tracker: Optional[ExecutionEventTracker] = None,
    ) -> None:
        """Initialize the provisioner with a server session."""
        super().__init__(session=session, dialect=dialect, tracker=tracker)

    def database_exists(self, name: str) -> bool:
        """Check whether a database with exactly this name exists.

        Raises:
            ServerCommandError: If the lookup fails
        """
        if not name:
            raise ValueError("Database name cannot be empty")
        rows = self._matching(
            self.dialect.database_exists(name), context={"database": name}
        )
        return bool(rows)

    def create_database(self, name: str) -> bool:
        """Create a database.

        Args:
            name: Database name

        Returns:
            True if this call created the database, False if the server
            reported that it already exists

        Raises:
            ServerCommandError: If the server rejects the create for any
                other reason
        """
        if not name:
            raise ValueError("Database name cannot be empty")

        self.logger.info("Creating database", extra={"database": name})
        try:
            self._execute(
                self.dialect.create_database(name),
                context={"database": name},
                emit_event="database_created",
            )
        except ServerCommandError as exc:
            if self.dialect.is_already_exists(exc):
                self.logger.info(
                    "Database was created concurrently", extra={"database": name}
                )
                return False
            raise
        return True

    def ensure_database(self, name: str) -> DatabaseStatus:
        """Make sure the database exists.

        Returns:
            DatabaseStatus.CREATED or DatabaseStatus.ALREADY_EXISTS

        Raises:
            CreateFailedError: If the database is missing and cannot be
                created; the reason is the server's message verbatim
        """
        try:
            if self.database_exists(name):
                self.logger.info("Database already exists", extra={"database": name})
                return DatabaseStatus.ALREADY_EXISTS
            created = self.create_database(name)
        except ServerCommandError as exc:
            raise CreateFailedError(
                exc.reason,
                context={"database": name},
                original_error=exc,
                remediation=self.dialect.remediation_for("database", exc),
            ) from exc
        return DatabaseStatus.CREATED if created else DatabaseStatus.ALREADY_EXISTS
