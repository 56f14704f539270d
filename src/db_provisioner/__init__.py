"""db_provisioner.

Idempotent provisioning of a database and its owner on a database server:
make sure the server is running, create the database if it is missing and
make sure a principal holds owner-level access to it. Every run converges
to the same end state and reports whether anything changed.

This package intentionally avoids importing snowflake modules at import time
so that unit tests and SQL Server runs work without a Snowflake connection.
"""

__version__ = "0.1.0"

__all__ = [
    "cli",
    "core",
    "infrastructure",
    "provisioner",
    "utils",
]
