"""Unit tests for login, database user and owner role provisioning."""

import pytest

from db_provisioner.core.base.results import GrantStatus, Principal
from db_provisioner.core.exceptions import GrantFailedError
from db_provisioner.infrastructure.dialects import SnowflakeDialect, SqlServerDialect
from db_provisioner.infrastructure.provisioning.principals import (
    PrincipalProvisioner,
)

ALICE = Principal("CORP\\alice")


@pytest.fixture
def server(fake_server):
    """Fake server holding the target database."""
    fake_server.add_database("AppDatabase")
    return fake_server


def _provisioner(server, tracker=None):
    return PrincipalProvisioner(server.session(), SqlServerDialect(), tracker=tracker)


def test_grants_everything_for_new_principal(server):
    """Test grants everything for new principal."""
    status = _provisioner(server).ensure_owner("AppDatabase", ALICE)

    assert status is GrantStatus.GRANTED
    assert ALICE.name in server.logins
    assert server.users["AppDatabase"][ALICE.name] == ALICE.name
    assert ALICE.name in server.owners["AppDatabase"]
    assert server.writes == [
        "CREATE LOGIN [CORP\\alice] FROM WINDOWS",
        "USE [AppDatabase]; CREATE USER [CORP\\alice] FOR LOGIN [CORP\\alice]",
        "USE [AppDatabase]; ALTER ROLE [db_owner] ADD MEMBER [CORP\\alice]",
    ]


def test_second_run_changes_nothing(server):
    """Test second run changes nothing."""
    _provisioner(server).ensure_owner("AppDatabase", ALICE)
    writes = list(server.writes)

    status = _provisioner(server).ensure_owner("AppDatabase", ALICE)

    assert status is GrantStatus.ALREADY_GRANTED
    assert server.writes == writes


def test_existing_login_only_adds_user_and_role(server):
    """Test existing login only adds user and role."""
    server.logins.add(ALICE.name)
    provisioner = _provisioner(server)

    assert provisioner.ensure_login(ALICE) is False
    assert provisioner.ensure_owner("AppDatabase", ALICE) is GrantStatus.GRANTED
    assert not any(sql.startswith("CREATE LOGIN") for sql in server.writes)


def test_database_creator_mapped_to_dbo_is_already_owner(server):
    """Test database creator mapped to dbo is already owner."""
    server.logins.add(ALICE.name)
    server.users["AppDatabase"][ALICE.name] = "dbo"

    status = _provisioner(server).ensure_owner("AppDatabase", ALICE)

    assert status is GrantStatus.ALREADY_GRANTED
    assert server.writes == []


def test_login_created_concurrently_counts_as_existing(server, driver_error):
    """Test login created concurrently counts as existing."""
    server.failures["CREATE LOGIN"] = driver_error(
        "The server principal 'CORP\\alice' already exists.", 15025
    )
    assert _provisioner(server).ensure_login(ALICE) is False


def test_sql_login_without_password_fails_with_hint(server):
    """Test sql login without password fails with hint."""
    with pytest.raises(GrantFailedError) as excinfo:
        _provisioner(server).ensure_owner("AppDatabase", Principal("app_user"))

    assert excinfo.value.step == "login"
    assert "password" in excinfo.value.remediation
    assert server.writes == []


def test_sql_login_with_password(server):
    """Test sql login with password."""
    principal = Principal("app_user", password="Str0ng!")
    tracker_events = []

    class Tracker:
        def record_event(self, component, event, payload):
            tracker_events.append(payload)

    provisioner = _provisioner(server, tracker=Tracker())
    assert provisioner.ensure_owner("AppDatabase", principal) is GrantStatus.GRANTED
    assert not any("Str0ng!" in str(payload) for payload in tracker_events)


def test_permission_failure_is_grant_failed(server, driver_error):
    """Test permission failure is grant failed."""
    server.failures["CREATE LOGIN"] = driver_error(
        "User does not have permission to perform this action.", 15247
    )

    with pytest.raises(GrantFailedError) as excinfo:
        _provisioner(server).ensure_owner("AppDatabase", ALICE)

    err = excinfo.value
    assert err.step == "login"
    assert "User does not have permission to perform this action." in err.reason
    assert "securityadmin" in err.remediation


def test_role_failure_reports_owner_role_step(server, driver_error):
    """Test role failure reports owner role step."""
    server.failures["ALTER ROLE"] = driver_error(
        "Cannot alter the role 'db_owner', because it does not exist or you do "
        "not have permission.",
        15151,
    )
    with pytest.raises(GrantFailedError) as excinfo:
        _provisioner(server).ensure_owner("AppDatabase", ALICE)
    assert excinfo.value.step == "owner_role"


def test_sub_steps_are_reported_in_order(server, driver_error):
    """Test sub steps are reported in order."""
    steps = []
    _provisioner(server).ensure_owner(
        "AppDatabase", ALICE, on_step=lambda *outcome: steps.append(outcome)
    )
    assert steps == [
        ("login", True, "Created login CORP\\alice"),
        ("database_user", True, "Created database user CORP\\alice in AppDatabase"),
        ("owner_role", True, "Added CORP\\alice to db_owner in AppDatabase"),
    ]

    server.failures["SUSER_SID"] = driver_error("Login failed.", 18456)
    steps.clear()
    with pytest.raises(GrantFailedError):
        _provisioner(server).ensure_owner(
            "AppDatabase", ALICE, on_step=lambda *outcome: steps.append(outcome)
        )
    assert steps == [("login", False, "Login CORP\\alice already exists")]


def test_snowflake_owner_chain(make_stub_session):
    """Test snowflake owner chain."""
    session = make_stub_session(
        [
            ("SHOW USERS", [{"name": "ALICE"}]),
            ("SHOW GRANTS ON DATABASE", []),
            ("SHOW GRANTS OF ROLE", []),
        ]
    )
    provisioner = PrincipalProvisioner(session, SnowflakeDialect())

    status = provisioner.ensure_owner("APP_DB", Principal("ALICE"))

    assert status is GrantStatus.GRANTED
    issued = [sql for sql, _ in session.queries if not sql.startswith("SHOW")]
    assert issued == [
        'CREATE ROLE IF NOT EXISTS "APP_DB_OWNER"',
        'GRANT OWNERSHIP ON DATABASE "APP_DB" TO ROLE "APP_DB_OWNER" COPY CURRENT GRANTS',
        'GRANT ROLE "APP_DB_OWNER" TO USER "ALICE"',
    ]


def test_snowflake_already_owner(make_stub_session):
    """Test snowflake already owner."""
    session = make_stub_session(
        [
            ("SHOW USERS", [{"name": "ALICE"}]),
            (
                "SHOW GRANTS ON DATABASE",
                [
                    {
                        "privilege": "OWNERSHIP",
                        "granted_to": "ROLE",
                        "grantee_name": "APP_DB_OWNER",
                    }
                ],
            ),
            ("SHOW GRANTS OF ROLE", [{"granted_to": "USER", "grantee_name": "ALICE"}]),
        ]
    )
    provisioner = PrincipalProvisioner(session, SnowflakeDialect())
    assert provisioner.ensure_owner("APP_DB", Principal("ALICE")) is (
        GrantStatus.ALREADY_GRANTED
    )
    assert all(sql.startswith("SHOW") for sql, _ in session.queries)
