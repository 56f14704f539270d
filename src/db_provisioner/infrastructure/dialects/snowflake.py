"""Snowflake statements for database and owner provisioning.

Snowflake has no database-scoped users. The principal's server login is a
Snowflake user, and its database-level identity is an owner role named
``<DATABASE>_OWNER`` that holds OWNERSHIP on the database. Owner-level
access means the user is granted that role.

``SHOW ... LIKE`` filters by case-insensitive pattern, so every lookup
also carries an exact ``match`` applied to the returned rows.
"""

from typing import Any, List, Mapping, Optional

from db_provisioner.core.base.results import Principal
from db_provisioner.infrastructure.dialects.base import Dialect, Statement


class SnowflakeDialect(Dialect):
    """Statement builder for Snowflake accounts.

    Attributes:
        admin_role: Role the provisioning session runs as. When set, the new
            owner role is granted to it so the session keeps visibility of
            the database after ownership moves.
    """

    name = "snowflake"
    # 002002 object already exists
    already_exists_codes = frozenset({2002})
    # 003001 insufficient privileges
    permission_codes = frozenset({3001})
    permission_phrases = ("insufficient privileges", "not authorized")
    database_permission_hint = (
        "Insufficient privileges to create the database; connect with a role "
        "holding CREATE DATABASE (for example SYSADMIN)."
    )
    grant_permission_hint = (
        "Insufficient privileges to create users or roles; connect with a role "
        "holding CREATE USER and CREATE ROLE (for example USERADMIN or "
        "SECURITYADMIN)."
    )

    def __init__(self, admin_role: Optional[str] = None) -> None:
        """Initialize the dialect."""
        self.admin_role = admin_role

    def native_codes(self, exc: BaseException) -> List[int]:
        """Error numbers carried by Snowpark or connector exceptions."""
        codes: List[int] = []
        current: Optional[BaseException] = exc
        while current is not None and len(codes) < 8:
            for attribute in ("sql_error_code", "errno"):
                value = getattr(current, attribute, None)
                if isinstance(value, int):
                    codes.append(value)
            inner = getattr(current, "original_error", None) or getattr(
                current, "orig", None
            )
            current = inner if isinstance(inner, BaseException) else None
        return codes

    @property
    def owner_role_label(self) -> str:
        return "<database>_OWNER"

    def quote_identifier(self, value: str) -> str:
        """Double-quote an identifier, doubling embedded quotes."""
        if not value:
            raise ValueError("Identifier cannot be empty")
        escaped = value.replace('"', '""')
        return f'"{escaped}"'

    @staticmethod
    def quote_literal(value: str) -> str:
        """Quote a string literal; backslash is an escape in Snowflake."""
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        return f"'{escaped}'"

    @staticmethod
    def owner_role(database: str) -> str:
        """Name of the role owning ``database``."""
        return f"{database}_OWNER"

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------
    def database_exists(self, name: str) -> Statement:
        return Statement(
            f"SHOW DATABASES LIKE {self.quote_literal(name)}",
            match={"name": name},
        )

    def create_database(self, name: str) -> Statement:
        return Statement(f"CREATE DATABASE {self.quote_identifier(name)}")

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------
    def login_exists(self, principal: Principal) -> Statement:
        return Statement(
            f"SHOW USERS LIKE {self.quote_literal(principal.name)}",
            match={"name": principal.name},
        )

    def create_login(self, principal: Principal) -> Statement:
        user = self.quote_identifier(principal.name)
        if not principal.password:
            return Statement(f"CREATE USER {user}")
        return Statement(
            f"CREATE USER {user} PASSWORD = {self.quote_literal(principal.password)}",
            display_sql=f"CREATE USER {user} PASSWORD = '********'",
        )

    def database_user(self, database: str, principal: Principal) -> Statement:
        role = self.owner_role(database)
        return Statement(
            f"SHOW GRANTS ON DATABASE {self.quote_identifier(database)}",
            match={"privilege": "OWNERSHIP", "granted_to": "ROLE", "grantee_name": role},
        )

    def database_user_name(self, database: str, principal: Principal) -> str:
        return self.owner_role(database)

    def user_name_from_row(
        self, row: Mapping[str, Any], database: str, principal: Principal
    ) -> str:
        return self.owner_role(database)

    def create_database_user(
        self, database: str, principal: Principal
    ) -> List[Statement]:
        role = self.quote_identifier(self.owner_role(database))
        db = self.quote_identifier(database)
        statements = [Statement(f"CREATE ROLE IF NOT EXISTS {role}")]
        if self.admin_role:
            statements.append(
                Statement(
                    f"GRANT ROLE {role} TO ROLE {self.quote_identifier(self.admin_role)}"
                )
            )
        statements.append(
            Statement(
                f"GRANT OWNERSHIP ON DATABASE {db} TO ROLE {role} COPY CURRENT GRANTS"
            )
        )
        return statements

    def owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> Statement:
        return Statement(
            f"SHOW GRANTS OF ROLE {self.quote_identifier(user_name)}",
            match={"granted_to": "USER", "grantee_name": principal.name},
        )

    def grant_owner(
        self, database: str, principal: Principal, user_name: str
    ) -> List[Statement]:
        return [
            Statement(
                f"GRANT ROLE {self.quote_identifier(user_name)} "
                f"TO USER {self.quote_identifier(principal.name)}"
            )
        ]
