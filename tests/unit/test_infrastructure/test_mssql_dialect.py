"""Unit tests for SQL Server statement construction."""

import pytest

from db_provisioner.core.base.results import Principal
from db_provisioner.core.exceptions import ServerCommandError
from db_provisioner.infrastructure.dialects import SqlServerDialect, dialect_for

dialect = SqlServerDialect()


def _command_error(text):
    return ServerCommandError("Server command failed", sql="X", original_error=RuntimeError(text))


def test_quote_identifier_doubles_closing_bracket():
    """Test quote identifier doubles closing bracket."""
    assert dialect.quote_identifier("App]; DROP DATABASE x; --") == (
        "[App]]; DROP DATABASE x; --]"
    )
    with pytest.raises(ValueError):
        dialect.quote_identifier("")


def test_catalog_lookups_bind_values():
    """Test catalog lookups bind values."""
    statement = dialect.database_exists("O'Brien")
    assert ":name" in statement.sql
    assert "O'Brien" not in statement.sql
    assert statement.params == {"name": "O'Brien"}

    login = dialect.login_exists(Principal("CORP\\alice"))
    assert login.params == {"name": "CORP\\alice"}


def test_create_database_quotes_name():
    """Test create database quotes name."""
    assert dialect.create_database("AppDatabase").sql == "CREATE DATABASE [AppDatabase]"


def test_windows_login_is_created_from_windows():
    """Test windows login is created from windows."""
    statement = dialect.create_login(Principal("CORP\\alice"))
    assert statement.sql == "CREATE LOGIN [CORP\\alice] FROM WINDOWS"
    assert not dialect.login_requires_password(Principal("CORP\\alice"))


def test_sql_login_password_is_redacted_in_display():
    """Test sql login password is redacted in display."""
    principal = Principal("app_user", password="it's secret")
    statement = dialect.create_login(principal)
    assert "N'it''s secret'" in statement.sql
    assert "secret" not in statement.display
    assert dialect.login_requires_password(principal)


def test_sql_login_without_password_is_rejected():
    """Test sql login without password is rejected."""
    with pytest.raises(ValueError):
        dialect.create_login(Principal("app_user"))


def test_database_user_is_matched_by_sid():
    """Test database user is matched by sid."""
    statement = dialect.database_user("AppDatabase", Principal("CORP\\alice"))
    assert "[AppDatabase].sys.database_principals" in statement.sql
    assert "SUSER_SID(:login)" in statement.sql
    assert statement.params == {"login": "CORP\\alice"}


def test_in_database_statements_use_sp_executesql():
    """Test in database statements use sp executesql."""
    principal = Principal("CORP\\alice")
    (create_user,) = dialect.create_database_user("AppDatabase", principal)
    assert create_user.sql == "EXEC [AppDatabase].sys.sp_executesql :statement"
    assert create_user.params == {
        "statement": "CREATE USER [CORP\\alice] FOR LOGIN [CORP\\alice]"
    }
    assert create_user.display.startswith("USE [AppDatabase]; CREATE USER")

    (grant,) = dialect.grant_owner("AppDatabase", principal, "CORP\\alice")
    assert grant.params == {"statement": "ALTER ROLE [db_owner] ADD MEMBER [CORP\\alice]"}


def test_owner_membership_lookup():
    """Test owner membership lookup."""
    statement = dialect.owner_membership("AppDatabase", Principal("a"), "a")
    assert statement.params == {"role": "db_owner", "member": "a"}


def test_dbo_is_implicit_owner():
    """Test dbo is implicit owner."""
    assert dialect.is_implicit_owner("dbo")
    assert not dialect.is_implicit_owner("alice")


@pytest.mark.parametrize(
    "message",
    [
        "Database 'AppDatabase' already exists. Choose a different database name. (1801)",
        "[SQL Server]The server principal 'x' already exists. (15025) (SQLExecDirectW)",
        "[SQL Server]User, group, or role 'x' already exists in the current database. (15023)",
    ],
)
def test_already_exists_classification(message):
    """Test already exists classification."""
    assert dialect.is_already_exists(_command_error(message))


def test_permission_classification_and_remediation():
    """Test permission classification and remediation."""
    error = _command_error(
        "[SQL Server]CREATE DATABASE permission denied in database 'master'. (262)"
    )
    assert dialect.is_permission_denied(error)
    assert not dialect.is_already_exists(error)
    assert "dbcreator" in dialect.remediation_for("database", error)
    assert "securityadmin" in dialect.remediation_for("login", error)


def test_other_errors_have_no_remediation():
    """Test other errors have no remediation."""
    error = _command_error("Could not allocate space for object (1105)")
    assert not dialect.is_permission_denied(error)
    assert dialect.remediation_for("database", error) is None


def test_dialect_for():
    """Test dialect for."""
    assert isinstance(dialect_for("mssql"), SqlServerDialect)
    with pytest.raises(ValueError):
        dialect_for("oracle")
