"""Idempotent first-run provisioning of a database and its owner.

The Provisioner runs three steps in order against one endpoint:

1. Reachability: the server process is running, or is started with a
   bounded wait.
2. Database: the target database exists, or is created.
3. Authorization: the principal has a server login, a database user and
   owner role membership.

Every step checks before it acts, so repeated runs with the same input
change nothing after the first. A failing step is fatal: later steps are
skipped and the error is recorded on the returned ProvisioningResult.

Classes:
    Provisioner: Orchestrate the provisioning steps
"""

from typing import Callable, Optional

from db_provisioner.core.base.results import (
    DatabaseStatus,
    GrantStatus,
    Principal,
    ProvisioningResult,
    ReachabilityStatus,
    ServerEndpoint,
    StepOutcome,
)
from db_provisioner.core.base.tracking import ExecutionEventTracker
from db_provisioner.core.config import ProvisioningConfig
from db_provisioner.core.exceptions import (
    ConfigurationError,
    CreateFailedError,
    EndpointUnreachableError,
    GrantFailedError,
    ProvisioningError,
    SessionError,
)
from db_provisioner.core.session import ServerSession, connect, scoped_session
from db_provisioner.infrastructure.dialects import Dialect, dialect_for
from db_provisioner.infrastructure.provisioning import (
    DatabaseProvisioner,
    PrincipalProvisioner,
)
from db_provisioner.infrastructure.service import ServiceController, controller_for
from db_provisioner.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    new_run_id,
)

SessionFactory = Callable[[ProvisioningConfig, ServerEndpoint], ServerSession]
StepCallback = Callable[[StepOutcome], None]


class Provisioner:
    """Provision a database and its owner on a database server.

    Attributes:
        config: Provisioning configuration
        logger: Structured logger

    Example:
        >>> provisioner = Provisioner(ProvisioningConfig())
        >>> result = provisioner.run()
        >>> result.database, result.authorization
        (<DatabaseStatus.CREATED: 'created'>, <GrantStatus.GRANTED: 'granted'>)
    """

    def __init__(
        self,
        config: ProvisioningConfig,
        *,
        controller: Optional[ServiceController] = None,
        session_factory: Optional[SessionFactory] = None,
        tracker: Optional[ExecutionEventTracker] = None,
        dialect: Optional[Dialect] = None,
        on_step: Optional[StepCallback] = None,
    ) -> None:
        """Initialize the Provisioner.

        Args:
            config: Provisioning configuration
            controller: Service controller; chosen from the configuration
                when omitted
            session_factory: Callable opening a session on an endpoint;
                ``db_provisioner.core.session.connect`` when omitted
            tracker: Optional tracker receiving every command issued
            dialect: Statement builder; chosen from the backend when omitted
            on_step: Optional callback receiving each step outcome as it is
                recorded
        """
        if config is None:
            raise ValueError("Config cannot be None")
        self.config = config
        self.logger: StructuredLogger = get_logger(__name__)
        self._controller = controller
        self._session_factory: SessionFactory = session_factory or connect
        self._tracker = tracker
        self._dialect = dialect or dialect_for(
            config.backend, admin_role=config.snowflake.role
        )
        self._on_step = on_step

    def run(self) -> ProvisioningResult:
        """Provision the endpoint, database and principal from the configuration.

        Raises:
            ConfigurationError: If the configured endpoint or principal is invalid
        """
        try:
            endpoint = self.config.server_endpoint()
            principal = self.config.target_principal()
        except ValueError as exc:
            raise ConfigurationError(
                str(exc),
                context={"endpoint": self.config.endpoint},
                original_error=exc,
            ) from exc
        return self.provision(endpoint, self.config.database, principal)

    def provision(
        self,
        endpoint: ServerEndpoint,
        database_name: str,
        principal: Principal,
    ) -> ProvisioningResult:
        """Ensure the server runs, the database exists and the principal owns it.

        Args:
            endpoint: Server endpoint
            database_name: Target database name
            principal: Principal to authorize as owner

        Returns:
            ProvisioningResult; ``error`` holds the failure that halted the
            run, if any
        """
        if not database_name:
            raise ConfigurationError("Database name cannot be empty")

        result = ProvisioningResult(
            endpoint=endpoint.address,
            database_name=database_name,
            principal=principal.name,
        )

        with LogContext(
            run_id=new_run_id(),
            endpoint=endpoint.address,
            database=database_name,
            principal=principal.name,
        ):
            self.logger.info("Starting provisioning", extra={"backend": endpoint.backend})
            try:
                self._ensure_reachable(endpoint, result)
                session = self._open_session(endpoint)
                with scoped_session(session):
                    self._ensure_database(session, database_name, result)
                    self._ensure_owner(session, database_name, principal, result)
            except ProvisioningError as exc:
                self._record_failure(exc, result)
                return result

            self.logger.info(
                "Provisioning completed",
                extra={
                    "database_status": result.database.value,
                    "authorization_status": result.authorization.value,
                    "changed": result.changed,
                },
            )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _ensure_reachable(
        self, endpoint: ServerEndpoint, result: ProvisioningResult
    ) -> None:
        controller = self._controller or controller_for(
            self.config.service, endpoint, tracker=self._tracker
        )
        started = controller.ensure_running(
            self.config.startup_timeout, self.config.poll_interval
        )
        if started:
            result.reachability = ReachabilityStatus.STARTED
            self._record(result, "reachability", True, f"Started server {endpoint}")
        else:
            result.reachability = ReachabilityStatus.RUNNING
            self._record(
                result, "reachability", False, f"Server {endpoint} is running"
            )

    def _open_session(self, endpoint: ServerEndpoint) -> ServerSession:
        try:
            return self._session_factory(self.config, endpoint)
        except SessionError as exc:
            raise EndpointUnreachableError(
                exc.reason,
                context={"endpoint": endpoint.address},
                original_error=exc,
                remediation=(
                    "Check that the server is installed and running and that "
                    "the endpoint name is correct."
                ),
            ) from exc

    def _ensure_database(
        self, session: ServerSession, database_name: str, result: ProvisioningResult
    ) -> None:
        databases = DatabaseProvisioner(session, self._dialect, tracker=self._tracker)
        result.database = databases.ensure_database(database_name)
        if result.database is DatabaseStatus.CREATED:
            self._record(result, "database", True, f"Created database {database_name}")
        else:
            self._record(
                result, "database", False, f"Database {database_name} already exists"
            )

    def _ensure_owner(
        self,
        session: ServerSession,
        database_name: str,
        principal: Principal,
        result: ProvisioningResult,
    ) -> None:
        principals = PrincipalProvisioner(
            session, self._dialect, tracker=self._tracker
        )
        result.authorization = principals.ensure_owner(
            database_name,
            principal,
            on_step=lambda step, changed, message: self._record(
                result, step, changed, message
            ),
        )

    # ------------------------------------------------------------------
    # Result bookkeeping
    # ------------------------------------------------------------------
    def _record(
        self, result: ProvisioningResult, step: str, changed: bool, message: str
    ) -> None:
        outcome = result.record(step, changed, message)
        self.logger.info(message, extra={"step": step, "changed": changed})
        if self._on_step is not None:
            self._on_step(outcome)

    def _record_failure(
        self, error: ProvisioningError, result: ProvisioningResult
    ) -> None:
        if isinstance(error, EndpointUnreachableError):
            result.reachability = ReachabilityStatus.UNREACHABLE
        elif isinstance(error, CreateFailedError):
            result.database = DatabaseStatus.FAILED
        elif isinstance(error, GrantFailedError):
            result.authorization = GrantStatus.FAILED
        result.error = error
        self.logger.error(
            f"Provisioning failed at step {error.step}",
            extra={
                "step": error.step,
                "reason": error.reason,
                "remediation": error.remediation,
            },
        )
