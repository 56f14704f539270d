"""Infrastructure for provisioning database servers.

Submodules:
    dialects: Server-specific statement builders and error classification
    provisioning: Idempotent database and owner provisioning
    service: Platform adapters that check and start the server
"""

from db_provisioner.infrastructure.provisioning import (
    DatabaseProvisioner,
    PrincipalProvisioner,
)

__all__ = [
    "DatabaseProvisioner",
    "PrincipalProvisioner",
]
