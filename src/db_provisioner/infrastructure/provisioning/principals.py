"""Principal provisioning for database ownership.

This module makes sure a principal holds owner-level access to a database.
Three sub-steps run in order, each checked before it is applied:

1. the server-level login exists
2. a database-level user is mapped to the login
3. that user is a member of the owner role

Classes:
    PrincipalProvisioner: Ensure logins, database users and owner membership
"""

from typing import Callable, Optional, Tuple, TypeVar

from db_provisioner.core.base.results import GrantStatus, Principal
from db_provisioner.core.base.tracking import ExecutionEventTracker
from db_provisioner.core.exceptions import GrantFailedError, ServerCommandError
from db_provisioner.core.session import ServerSession
from db_provisioner.infrastructure.dialects import Dialect
from db_provisioner.infrastructure.provisioning.base import BaseProvisioner

T = TypeVar("T")

StepCallback = Callable[[str, bool, str], None]


class PrincipalProvisioner(BaseProvisioner):
    """Provision logins, database users and owner role membership.

    Creating a login or user that another run created in the meantime is
    treated as success, and adding an existing member to the owner role is
    a no-op, so concurrent runs converge.

    Attributes:
        session: Server session
        dialect: Statement builder for the server family
        logger: Structured logger

    Example:
        >>> provisioner = PrincipalProvisioner(session, SqlServerDialect())
        >>> provisioner.ensure_owner("AppDatabase", Principal("CORP\\\\alice"))
        <GrantStatus.GRANTED: 'granted'>
    """

    def __init__(
        self,
        session: ServerSession,
        dialect: Dialect,
        tracker: Optional[ExecutionEventTracker] = None,
    ) -> None:
        """Initialize the PrincipalProvisioner."""
        super().__init__(session=session, dialect=dialect, tracker=tracker)

    # ------------------------------------------------------------------
    # Logins
    # ------------------------------------------------------------------
    def login_exists(self, principal: Principal) -> bool:
        """Check whether the server-level login exists."""
        rows = self._matching(
            self.dialect.login_exists(principal),
            context={"principal": principal.name},
        )
        return bool(rows)

    def ensure_login(self, principal: Principal) -> bool:
        """Create the server-level login if it is missing.

        Returns:
            True if the login was created

        Raises:
            GrantFailedError: If the login is missing and cannot be created
        """
        return self._granting(principal, "login", lambda: self._ensure_login(principal))

    def _ensure_login(self, principal: Principal) -> bool:
        if self.login_exists(principal):
            self.logger.info("Login already exists", extra={"principal": principal.name})
            return False

        if self.dialect.login_requires_password(principal) and not principal.password:
            raise GrantFailedError(
                f"Login {principal.name} does not exist and no password was "
                "supplied to create it",
                context={"principal": principal.name},
                step="login",
                remediation=(
                    "Supply a password for the new login (principal_password) "
                    "or authorize a Windows account (DOMAIN\\user)."
                ),
            )

        self.logger.info("Creating login", extra={"principal": principal.name})
        return self._create_tolerating_race(
            lambda: self._execute(
                self.dialect.create_login(principal),
                context={"principal": principal.name},
                emit_event="login_created",
            )
        )

    # ------------------------------------------------------------------
    # Database users
    # ------------------------------------------------------------------
    def find_database_user(self, database: str, principal: Principal) -> Optional[str]:
        """Return the database-level user mapped to the principal, if any."""
        rows = self._matching(
            self.dialect.database_user(database, principal),
            context={"database": database, "principal": principal.name},
        )
        if not rows:
            return None
        return self.dialect.user_name_from_row(rows[0], database, principal)

    def ensure_database_user(
        self, database: str, principal: Principal
    ) -> Tuple[str, bool]:
        """Map a database-level user to the principal if none is mapped.

        Returns:
            Tuple of the mapped user name and whether it was created

        Raises:
            GrantFailedError: If no user is mapped and one cannot be created
        """
        return self._granting(
            principal,
            "database_user",
            lambda: self._ensure_database_user(database, principal),
            database=database,
        )

    def _ensure_database_user(
        self, database: str, principal: Principal
    ) -> Tuple[str, bool]:
        existing = self.find_database_user(database, principal)
        if existing is not None:
            self.logger.info(
                "Database user already exists",
                extra={"database": database, "user": existing},
            )
            return existing, False

        user_name = self.dialect.database_user_name(database, principal)
        self.logger.info(
            "Creating database user",
            extra={"database": database, "user": user_name},
        )
        created = False
        for statement in self.dialect.create_database_user(database, principal):
            created = (
                self._create_tolerating_race(
                    lambda statement=statement: self._execute(
                        statement,
                        context={"database": database, "user": user_name},
                        emit_event="database_user_created",
                    )
                )
                or created
            )
        return user_name, created

    # ------------------------------------------------------------------
    # Owner role
    # ------------------------------------------------------------------
    def has_owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> bool:
        """Check whether the user already holds the owner role."""
        if self.dialect.is_implicit_owner(user_name):
            return True
        rows = self._matching(
            self.dialect.owner_membership(database, principal, user_name),
            context={"database": database, "user": user_name},
        )
        return bool(rows)

    def ensure_owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> bool:
        """Add the user to the owner role if it is not a member.

        Returns:
            True if membership was granted

        Raises:
            GrantFailedError: If the grant fails
        """
        return self._granting(
            principal,
            "owner_role",
            lambda: self._ensure_owner_membership(database, principal, user_name),
            database=database,
        )

    def _ensure_owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> bool:
        if self.has_owner_membership(database, principal, user_name):
            self.logger.info(
                "Owner role already granted",
                extra={"database": database, "user": user_name},
            )
            return False

        self.logger.info(
            "Granting owner role",
            extra={
                "database": database,
                "user": user_name,
                "role": self.dialect.owner_role_label,
            },
        )
        for statement in self.dialect.grant_owner(database, principal, user_name):
            self._execute(
                statement,
                context={"database": database, "user": user_name},
                emit_event="owner_role_granted",
            )
        return True

    def ensure_owner(
        self,
        database: str,
        principal: Principal,
        on_step: Optional[StepCallback] = None,
    ) -> GrantStatus:
        """Make sure the principal holds owner-level access to the database.

        Args:
            database: Database the principal must own
            principal: Login to authorize
            on_step: Called with (step, changed, message) after each of the
                login, database_user and owner_role sub-steps

        Returns:
            GrantStatus.GRANTED when any sub-step changed state, otherwise
            GrantStatus.ALREADY_GRANTED

        Raises:
            GrantFailedError: If any sub-step fails; sub-steps already done
                have been reported to ``on_step``
        """
        report = on_step or (lambda step, changed, message: None)

        login_created = self.ensure_login(principal)
        report(
            "login",
            login_created,
            f"Created login {principal}"
            if login_created
            else f"Login {principal} already exists",
        )

        user_name, user_created = self.ensure_database_user(database, principal)
        report(
            "database_user",
            user_created,
            f"Created database user {user_name} in {database}"
            if user_created
            else f"Database user {user_name} already exists in {database}",
        )

        role_granted = self.ensure_owner_membership(database, principal, user_name)
        role = self.dialect.owner_role_label
        report(
            "owner_role",
            role_granted,
            f"Added {user_name} to {role} in {database}"
            if role_granted
            else f"{user_name} already holds {role} in {database}",
        )

        if login_created or user_created or role_granted:
            return GrantStatus.GRANTED
        return GrantStatus.ALREADY_GRANTED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _create_tolerating_race(self, create: Callable[[], object]) -> bool:
        """Run a create; an "already exists" rejection means another run won."""
        try:
            create()
        except ServerCommandError as exc:
            if self.dialect.is_already_exists(exc):
                self.logger.info(
                    "Object was created concurrently", extra={"sql": exc.sql}
                )
                return False
            raise
        return True

    def _granting(
        self,
        principal: Principal,
        step: str,
        action: Callable[[], T],
        *,
        database: Optional[str] = None,
    ) -> T:
        """Run a sub-step, converting server failures into GrantFailedError."""
        try:
            return action()
        except ServerCommandError as exc:
            context = {"principal": principal.name}
            if database:
                context["database"] = database
            raise GrantFailedError(
                exc.reason,
                context=context,
                original_error=exc,
                step=step,
                remediation=self.dialect.remediation_for(step, exc),
            ) from exc
