"""Data model for provisioning inputs and outcomes.

Classes:
    ServerEndpoint: Address of the database server instance
    Principal: Identity to authorize as database owner
    ReachabilityStatus: Outcome of the server reachability step
    DatabaseStatus: Outcome of the database step
    GrantStatus: Outcome of the authorization step
    StepOutcome: One human-readable record per executed sub-step
    ProvisioningResult: Merged outcome of a provisioning run
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from db_provisioner.core.exceptions import ProvisioningError

SUPPORTED_BACKENDS = ("mssql", "snowflake")


class ReachabilityStatus(Enum):
    """Enumeration of reachability outcomes."""

    RUNNING = "running"
    STARTED = "started"
    UNREACHABLE = "unreachable"
    SKIPPED = "skipped"


class DatabaseStatus(Enum):
    """Enumeration of database step outcomes."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"
    SKIPPED = "skipped"


class GrantStatus(Enum):
    """Enumeration of authorization step outcomes."""

    GRANTED = "granted"
    ALREADY_GRANTED = "already_granted"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ServerEndpoint:
    """Address identifying a database server instance.

    Attributes:
        address: Server address (``(localdb)\\MSSQLLocalDB``, ``host\\INSTANCE``,
            ``host,1433`` or a Snowflake account identifier)
        backend: Server family, one of ``mssql`` or ``snowflake``
    """

    address: str
    backend: str = "mssql"

    def __post_init__(self) -> None:
        """Validate endpoint."""
        if not self.address or not self.address.strip():
            raise ValueError("Endpoint address cannot be empty")
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Invalid backend: {self.backend}. "
                f"Must be one of: {list(SUPPORTED_BACKENDS)}"
            )

    @property
    def host(self) -> str:
        """Host part of an ``host\\instance`` address."""
        return self.address.split("\\", 1)[0]

    @property
    def instance(self) -> Optional[str]:
        """Named instance part of an ``host\\instance`` address, if any."""
        if "\\" not in self.address:
            return None
        return self.address.split("\\", 1)[1] or None

    @property
    def is_localdb(self) -> bool:
        """Whether the address names a SQL Server Express LocalDB instance."""
        return self.host.strip().lower() == "(localdb)"

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class Principal:
    """Identity authorized against the database.

    Attributes:
        name: Login name (``DOMAIN\\user`` for Windows accounts)
        password: Optional password, used only when a SQL login or a
            Snowflake user has to be created
    """

    name: str
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate principal."""
        if not self.name or not self.name.strip():
            raise ValueError("Principal name cannot be empty")

    @property
    def is_windows_account(self) -> bool:
        """Whether the name is a ``DOMAIN\\user`` Windows account."""
        return "\\" in self.name

    def __str__(self) -> str:
        return self.name


@dataclass
class StepOutcome:
    """Record of one executed sub-step.

    Attributes:
        step: Sub-step name (reachability, database, login, database_user,
            owner_role)
        changed: Whether the sub-step changed server state
        message: Human-readable status line
    """

    step: str
    changed: bool
    message: str


@dataclass
class ProvisioningResult:
    """Outcome of a provisioning run.

    Attributes:
        endpoint: Endpoint address provisioned against
        database_name: Target database name
        principal: Principal name authorized
        reachability: Reachability step outcome
        database: Database step outcome
        authorization: Authorization step outcome
        steps: Sub-step records in execution order
        error: Error that halted the run, if any
    """

    endpoint: str
    database_name: str
    principal: str
    reachability: ReachabilityStatus = ReachabilityStatus.SKIPPED
    database: DatabaseStatus = DatabaseStatus.SKIPPED
    authorization: GrantStatus = GrantStatus.SKIPPED
    steps: List[StepOutcome] = field(default_factory=list)
    error: Optional[ProvisioningError] = None

    @property
    def ok(self) -> bool:
        """True when every step succeeded or was a no-op."""
        return self.error is None

    @property
    def exit_code(self) -> int:
        """Process exit code: 0 on success, the error's code otherwise."""
        if self.error is None:
            return 0
        return self.error.exit_code or 1

    @property
    def changed(self) -> bool:
        """Whether any step changed server state."""
        return any(step.changed for step in self.steps)

    def record(self, step: str, changed: bool, message: str) -> StepOutcome:
        """Append a sub-step record and return it."""
        outcome = StepOutcome(step=step, changed=changed, message=message)
        self.steps.append(outcome)
        return outcome

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the result for JSON output."""
        payload: Dict[str, Any] = {
            "endpoint": self.endpoint,
            "database_name": self.database_name,
            "principal": self.principal,
            "reachability": self.reachability.value,
            "database": self.database.value,
            "authorization": self.authorization.value,
            "ok": self.ok,
            "exit_code": self.exit_code,
            "steps": [
                {"step": s.step, "changed": s.changed, "message": s.message}
                for s in self.steps
            ],
            "error": None,
        }
        if self.error is not None:
            payload["error"] = {
                "type": type(self.error).__name__,
                "step": self.error.step,
                "reason": self.error.reason,
                "remediation": self.error.remediation,
            }
        return payload
