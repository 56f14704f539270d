"""SQL Server statements for database and owner provisioning.

Catalog lookups bind their values as parameters. Statements that must run
inside the target database are sent through ``<db>.sys.sp_executesql`` with
the statement text itself bound as a parameter, so no connection-level
``USE`` is needed and the session stays on ``master``.
"""

from typing import List

from db_provisioner.core.base.results import Principal
from db_provisioner.infrastructure.dialects.base import Dialect, Statement

OWNER_ROLE = "db_owner"


class SqlServerDialect(Dialect):
    """Statement builder for Microsoft SQL Server and LocalDB."""

    name = "mssql"
    # 1801 database exists, 15025 server principal exists, 15023 user or
    # role exists, 15063 login already has an account under another name.
    already_exists_codes = frozenset({1801, 15025, 15023, 15063})
    # 262 CREATE DATABASE permission denied, 229 object permission denied,
    # 15247 no permission to perform the action, 15151 principal missing or
    # no permission, 916 principal cannot access the database.
    permission_codes = frozenset({262, 229, 15247, 15151, 916})
    database_permission_hint = (
        "Insufficient privilege to create the database; re-run as a member of "
        "the dbcreator or sysadmin server role."
    )
    grant_permission_hint = (
        "Insufficient privilege to create login or grant roles; re-run as a "
        "member of the securityadmin or sysadmin server role."
    )

    @property
    def owner_role_label(self) -> str:
        return OWNER_ROLE

    def quote_identifier(self, value: str) -> str:
        """Bracket-quote an identifier, doubling closing brackets."""
        if not value:
            raise ValueError("Identifier cannot be empty")
        escaped = value.replace("]", "]]")
        return f"[{escaped}]"

    @staticmethod
    def quote_literal(value: str) -> str:
        """Quote a Unicode string literal."""
        escaped = value.replace("'", "''")
        return f"N'{escaped}'"

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------
    def database_exists(self, name: str) -> Statement:
        return Statement(
            "SELECT name FROM sys.databases WHERE name = :name",
            params={"name": name},
        )

    def create_database(self, name: str) -> Statement:
        return Statement(f"CREATE DATABASE {self.quote_identifier(name)}")

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------
    def login_requires_password(self, principal: Principal) -> bool:
        """SQL-authenticated logins need a password; Windows logins do not."""
        return not principal.is_windows_account

    def login_exists(self, principal: Principal) -> Statement:
        return Statement(
            "SELECT name FROM sys.server_principals "
            "WHERE name = :name AND type IN ('S', 'U', 'G', 'E', 'X')",
            params={"name": principal.name},
        )

    def create_login(self, principal: Principal) -> Statement:
        login = self.quote_identifier(principal.name)
        if principal.is_windows_account:
            return Statement(f"CREATE LOGIN {login} FROM WINDOWS")
        if not principal.password:
            raise ValueError("A password is required to create a SQL login")
        return Statement(
            f"CREATE LOGIN {login} WITH PASSWORD = "
            f"{self.quote_literal(principal.password)}",
            display_sql=f"CREATE LOGIN {login} WITH PASSWORD = N'********'",
        )

    def database_user(self, database: str, principal: Principal) -> Statement:
        # Match by SID so a login already mapped under another user name
        # (dbo for the database creator) is found.
        db = self.quote_identifier(database)
        return Statement(
            f"SELECT name FROM {db}.sys.database_principals "
            "WHERE sid = SUSER_SID(:login)",
            params={"login": principal.name},
        )

    def database_user_name(self, database: str, principal: Principal) -> str:
        return principal.name

    def create_database_user(
        self, database: str, principal: Principal
    ) -> List[Statement]:
        user = self.quote_identifier(principal.name)
        return [
            self._in_database(database, f"CREATE USER {user} FOR LOGIN {user}")
        ]

    def owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> Statement:
        db = self.quote_identifier(database)
        return Statement(
            "SELECT member.name AS name "
            f"FROM {db}.sys.database_role_members AS drm "
            f"JOIN {db}.sys.database_principals AS role "
            "ON role.principal_id = drm.role_principal_id "
            f"JOIN {db}.sys.database_principals AS member "
            "ON member.principal_id = drm.member_principal_id "
            "WHERE role.name = :role AND member.name = :member",
            params={"role": OWNER_ROLE, "member": user_name},
        )

    def grant_owner(
        self, database: str, principal: Principal, user_name: str
    ) -> List[Statement]:
        role = self.quote_identifier(OWNER_ROLE)
        member = self.quote_identifier(user_name)
        return [self._in_database(database, f"ALTER ROLE {role} ADD MEMBER {member}")]

    def is_implicit_owner(self, user_name: str) -> bool:
        """The login mapped to ``dbo`` owns the database."""
        return user_name.lower() == "dbo"

    def _in_database(self, database: str, statement: str) -> Statement:
        db = self.quote_identifier(database)
        return Statement(
            f"EXEC {db}.sys.sp_executesql :statement",
            params={"statement": statement},
            display_sql=f"USE {db}; {statement}",
        )
