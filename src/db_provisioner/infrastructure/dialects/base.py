"""Shared statement model and dialect interface.

A dialect turns provisioning intents (does this database exist, create this
login, add this user to the owner role) into server-specific statements.
Values that can be bound are always passed as parameters; identifiers,
which cannot be bound, are quoted by the dialect.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from db_provisioner.core.base.results import Principal
from db_provisioner.core.exceptions import server_message

Params = Union[Dict[str, Any], Sequence[Any]]

_NATIVE_CODE = re.compile(r"\((\d{3,5})\)")


def row_value(row: Mapping[str, Any], column: str) -> Any:
    """Look up a column in a result row, ignoring column-name case."""
    if column in row:
        return row[column]
    lowered = column.lower()
    for key, value in row.items():
        if str(key).lower() == lowered:
            return value
    return None


@dataclass(frozen=True)
class Statement:
    """A statement ready to send to the server.

    Attributes:
        sql: Statement text
        params: Bound parameters, if any
        match: Column/value pairs a result row must carry to count as a hit;
            used where the server can only filter by pattern
        display_sql: Text to log and transcribe instead of ``sql`` (secrets
            redacted, wrapped statements unwrapped)
    """

    sql: str
    params: Optional[Params] = None
    match: Optional[Dict[str, str]] = None
    display_sql: Optional[str] = None

    @property
    def display(self) -> str:
        """Text safe to show to the operator."""
        return self.display_sql or self.sql

    def matching_rows(
        self, rows: Iterable[Mapping[str, Any]]
    ) -> List[Mapping[str, Any]]:
        """Filter rows by ``match``; all rows match when it is unset."""
        if not self.match:
            return list(rows)
        return [
            row
            for row in rows
            if all(row_value(row, k) == v for k, v in self.match.items())
        ]


class Dialect(ABC):
    """Statement builder and error classifier for one server family."""

    name: str = ""
    #: Native error numbers meaning "object already exists".
    already_exists_codes: frozenset = frozenset()
    #: Native error numbers meaning "permission denied".
    permission_codes: frozenset = frozenset()
    permission_phrases: tuple = ("permission denied",)
    database_permission_hint = (
        "Insufficient privilege to create databases; re-run as an account "
        "allowed to create databases."
    )
    grant_permission_hint = (
        "Insufficient privilege to create logins or grant roles; re-run as an "
        "account allowed to manage security."
    )

    # ------------------------------------------------------------------
    # Quoting
    # ------------------------------------------------------------------
    @abstractmethod
    def quote_identifier(self, value: str) -> str:
        """Safely quote an identifier."""

    @staticmethod
    def quote_literal(value: str) -> str:
        """Safely quote a string literal."""
        escaped = value.replace("'", "''")
        return f"'{escaped}'"

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------
    @abstractmethod
    def database_exists(self, name: str) -> Statement:
        """Statement returning a matching row when the database exists."""

    @abstractmethod
    def create_database(self, name: str) -> Statement:
        """Statement creating the database (not guarded by IF NOT EXISTS)."""

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------
    @property
    @abstractmethod
    def owner_role_label(self) -> str:
        """Human-readable name of the owner role for status lines."""

    def login_requires_password(self, principal: Principal) -> bool:
        """Whether creating this principal's login needs a password."""
        return False

    @abstractmethod
    def login_exists(self, principal: Principal) -> Statement:
        """Statement returning a matching row when the login exists."""

    @abstractmethod
    def create_login(self, principal: Principal) -> Statement:
        """Statement creating the server-level login."""

    @abstractmethod
    def database_user(self, database: str, principal: Principal) -> Statement:
        """Statement returning the database-level user mapped to the principal.

        The user name is read from the ``name`` column of the first matching
        row.
        """

    @abstractmethod
    def database_user_name(self, database: str, principal: Principal) -> str:
        """Name the database-level user gets when it is created."""

    def user_name_from_row(
        self, row: Mapping[str, Any], database: str, principal: Principal
    ) -> str:
        """Read the mapped user name from a ``database_user`` result row."""
        return str(row_value(row, "name"))

    @abstractmethod
    def create_database_user(
        self, database: str, principal: Principal
    ) -> List[Statement]:
        """Statements creating the database-level user."""

    @abstractmethod
    def owner_membership(
        self, database: str, principal: Principal, user_name: str
    ) -> Statement:
        """Statement returning a matching row when the user holds the owner role."""

    @abstractmethod
    def grant_owner(
        self, database: str, principal: Principal, user_name: str
    ) -> List[Statement]:
        """Statements adding the user to the owner role."""

    def is_implicit_owner(self, user_name: str) -> bool:
        """Whether the mapped user owns the database without role membership."""
        return False

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------
    def native_codes(self, exc: BaseException) -> List[int]:
        """Native error numbers found in the server message."""
        return [int(code) for code in _NATIVE_CODE.findall(server_message(exc))]

    def is_already_exists(self, exc: BaseException) -> bool:
        """Whether the server rejected a create because the object exists."""
        if "already exists" in server_message(exc).lower():
            return True
        return any(code in self.already_exists_codes for code in self.native_codes(exc))

    def is_permission_denied(self, exc: BaseException) -> bool:
        """Whether the server rejected a statement for lack of privilege."""
        text = server_message(exc).lower()
        if any(phrase in text for phrase in self.permission_phrases):
            return True
        return any(code in self.permission_codes for code in self.native_codes(exc))

    def remediation_for(self, step: str, exc: BaseException) -> Optional[str]:
        """Suggest an operator action for a failed step."""
        if not self.is_permission_denied(exc):
            return None
        if step == "database":
            return self.database_permission_hint
        return self.grant_permission_hint
