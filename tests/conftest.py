"""Pytest configuration and fixtures."""

import re
import subprocess
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

import pytest

from db_provisioner.core.base.results import Principal, ServerEndpoint
from db_provisioner.core.config import ProvisioningConfig
from db_provisioner.core.exceptions import EndpointUnreachableError, SessionError
from db_provisioner.infrastructure.service.base import ServiceController

_BRACKETED = re.compile(r"\[((?:[^\]]|\]\])+)\]")


class FakeDriverError(Exception):
    """Error shaped like a pyodbc error raised by SQL Server."""

    def __init__(self, text: str, code: int) -> None:
        """Build the driver-style message."""
        super().__init__(
            "('42000', \"[42000] [Microsoft][ODBC Driver 17 for SQL Server]"
            f"[SQL Server]{text} ({code}) (SQLExecDirectW)\")"
        )


def _identifiers(sql: str) -> List[str]:
    return [value.replace("]]", "]") for value in _BRACKETED.findall(sql)]


class FakeSqlServer:
    """In-memory SQL Server understanding the statements SqlServerDialect builds.

    Attributes:
        databases: Existing database names
        logins: Existing server logins
        users: Per database, login name to database user name
        owners: Per database, user names in db_owner
        failures: Statement substring to exception raised when it runs
        stale_catalog: Database names hidden from the next existence check,
            as if another run created them after the check
    """

    def __init__(self) -> None:
        """Start with an empty server."""
        self.databases: Set[str] = set()
        self.logins: Set[str] = set()
        self.users: Dict[str, Dict[str, str]] = {}
        self.owners: Dict[str, Set[str]] = {}
        self.failures: Dict[str, Exception] = {}
        self.stale_catalog: Set[str] = set()
        self.statements: List[str] = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------
    def add_database(self, name: str, creator: Optional[str] = None) -> None:
        self.databases.add(name)
        self.users.setdefault(name, {})
        self.owners.setdefault(name, set())
        if creator:
            self.users[name][creator] = "dbo"

    def add_owner(self, database: str, login: str) -> None:
        self.logins.add(login)
        self.users[database][login] = login
        self.owners[database].add(login)

    @property
    def writes(self) -> List[str]:
        """Statements that change state."""
        return [
            sql
            for sql in self.statements
            if sql.startswith(("CREATE", "ALTER", "GRANT", "USE"))
        ]

    def session(self) -> "FakeSession":
        self.sessions_opened += 1
        return FakeSession(self)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute(self, sql: str, params: Optional[Mapping[str, Any]]) -> List[Dict]:
        params = dict(params or {})
        statement = params.get("statement")
        if sql.startswith("EXEC "):
            database = _identifiers(sql)[0]
            self.statements.append(f"USE [{database}]; {statement}")
            self._raise_configured(statement)
            return self._in_database(database, statement)

        self.statements.append(sql)
        self._raise_configured(sql)

        if sql.startswith("SELECT name FROM sys.databases WHERE"):
            name = params["name"]
            if name in self.stale_catalog:
                self.stale_catalog.discard(name)
                return []
            return [{"name": name}] if name in self.databases else []
        if sql.startswith("CREATE DATABASE"):
            name = _identifiers(sql)[0]
            if name in self.databases:
                raise FakeDriverError(
                    f"Database '{name}' already exists. Choose a different "
                    "database name.",
                    1801,
                )
            self.add_database(name)
            return []
        if "sys.server_principals" in sql:
            name = params["name"]
            return [{"name": name}] if name in self.logins else []
        if sql.startswith("CREATE LOGIN"):
            name = _identifiers(sql)[0]
            if name in self.logins:
                raise FakeDriverError(
                    f"The server principal '{name}' already exists.", 15025
                )
            self.logins.add(name)
            return []
        if "sys.database_role_members" in sql:
            database = _identifiers(sql)[0]
            member = params["member"]
            return [{"name": member}] if member in self.owners[database] else []
        if "sys.database_principals" in sql:
            database = _identifiers(sql)[0]
            user = self.users[database].get(params["login"])
            return [{"name": user}] if user else []
        raise AssertionError(f"Unexpected statement: {sql}")

    def _in_database(self, database: str, statement: str) -> List[Dict]:
        names = _identifiers(statement)
        if statement.startswith("CREATE USER"):
            user, login = names[0], names[1]
            if user in self.users[database].values():
                raise FakeDriverError(
                    f"User, group, or role '{user}' already exists in the "
                    "current database.",
                    15023,
                )
            self.users[database][login] = user
            return []
        if statement.startswith("ALTER ROLE"):
            self.owners[database].add(names[1])
            return []
        raise AssertionError(f"Unexpected statement: {statement}")

    def _raise_configured(self, sql: str) -> None:
        for fragment, error in self.failures.items():
            if fragment in sql:
                raise error


class FakeSession:
    """ServerSession bound to a FakeSqlServer."""

    def __init__(self, server: FakeSqlServer) -> None:
        """Bind the session."""
        self.server = server
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> List[Dict]:
        assert not self.closed, "session used after close"
        return self.server.execute(sql, params)

    def close(self) -> None:
        self.closed = True
        self.server.sessions_closed += 1


class StubSession:
    """Session answering statements by substring routes.

    ``routes`` is a list of (substring, rows or exception) pairs; the first
    route whose substring occurs in the statement wins.
    """

    def __init__(self, routes=None):
        """Stub session."""
        self.routes = routes or []
        self.queries = []
        self.closed = False

    def execute(self, sql, params=None):
        """Stub execute."""
        self.queries.append((sql, params))
        for substr, outcome in self.routes:
            if substr in sql:
                if isinstance(outcome, BaseException):
                    raise outcome
                return list(outcome)
        return []

    def close(self):
        """Stub close."""
        self.closed = True


class StubController(ServiceController):
    """Controller whose running state is scripted.

    Attributes:
        running: Current state
        start_succeeds: Whether start() brings the server up
        start_error: Exception raised by start(), if any
    """

    kind = "stub"

    def __init__(
        self,
        running: bool = True,
        *,
        start_succeeds: bool = True,
        start_error: Optional[Exception] = None,
    ) -> None:
        """Build the controller."""
        super().__init__("StubInstance")
        self.running = running
        self.start_succeeds = start_succeeds
        self.start_error = start_error
        self.start_calls = 0

    def is_running(self, timeout: float = 60.0) -> bool:
        return self.running

    def start(self, timeout: float) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        if self.start_succeeds:
            self.running = True


class FakeRunner:
    """``subprocess.run`` replacement answering commands by prefix.

    ``responses`` maps a command prefix (tuple of arguments) to a list of
    (returncode, stdout) pairs consumed in order; the last pair repeats.
    """

    def __init__(self, responses=None, error: Optional[Exception] = None):
        """Build the runner."""
        self.responses = {k: list(v) for k, v in (responses or {}).items()}
        self.error = error
        self.calls: List[List[str]] = []

    def __call__(self, args, **kwargs):
        """Stub subprocess.run."""
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        for prefix, outcomes in self.responses.items():
            if tuple(args[: len(prefix)]) == prefix:
                code, stdout = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                return subprocess.CompletedProcess(args, code, stdout, "")
        return subprocess.CompletedProcess(args, 0, "", "")


class RecordingTracker:
    """Tracker keeping every event in memory."""

    def __init__(self):
        """Start empty."""
        self.events = []

    def record_event(self, component, event, payload):
        """Record an event."""
        self.events.append((component, event, dict(payload)))


@pytest.fixture
def fake_server():
    """Empty in-memory SQL Server."""
    return FakeSqlServer()


@pytest.fixture
def session_factory(fake_server) -> Callable[..., FakeSession]:
    """Session factory opening sessions on the fake server."""

    def factory(config, endpoint):
        return fake_server.session()

    return factory


@pytest.fixture
def unreachable_factory():
    """Session factory that cannot reach the server."""

    def factory(config, endpoint):
        raise SessionError(
            "Failed to open server session",
            original_error=FakeDriverError("Login timeout expired", 0),
        )

    return factory


@pytest.fixture
def endpoint():
    """Default LocalDB endpoint."""
    return ServerEndpoint(address="(localdb)\\MSSQLLocalDB")


@pytest.fixture
def principal():
    """Windows principal."""
    return Principal(name="CORP\\alice")


@pytest.fixture
def config():
    """Configuration for the default endpoint and database."""
    return ProvisioningConfig(principal="CORP\\alice", startup_timeout=1.0)


@pytest.fixture
def tracker():
    """In-memory tracker."""
    return RecordingTracker()


@pytest.fixture
def not_installed_error():
    """Reachability error for a server that is not installed."""
    return EndpointUnreachableError(
        "SqlLocalDB was not found; the database server does not appear to be "
        "installed",
        remediation="Install SQL Server Express LocalDB.",
    )


@pytest.fixture
def driver_error():
    """Factory for SQL Server driver errors: ``driver_error(text, code)``."""
    return FakeDriverError


@pytest.fixture
def make_controller():
    """Factory for scripted service controllers."""
    return StubController


@pytest.fixture
def make_runner():
    """Factory for ``subprocess.run`` replacements."""
    return FakeRunner


@pytest.fixture
def make_stub_session():
    """Factory for substring-routed stub sessions."""
    return StubSession


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo configure_logging() calls so caplog keeps seeing package records."""
    import logging

    root = logging.getLogger("db_provisioner")
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
