"""Idempotent provisioning of databases and their owners.

Classes:
    DatabaseProvisioner: Check for and create databases
    PrincipalProvisioner: Ensure logins, database users and owner membership
"""

from db_provisioner.infrastructure.provisioning.databases import (
    DatabaseProvisioner,
)
from db_provisioner.infrastructure.provisioning.principals import (
    PrincipalProvisioner,
)

__all__ = [
    "DatabaseProvisioner",
    "PrincipalProvisioner",
]
