"""Base data model and interfaces for the provisioning tool.

Classes:
    ServerEndpoint: Address of the database server instance
    Principal: Identity authorized as database owner
    ProvisioningResult: Merged outcome of a provisioning run
    ExecutionEventTracker: Protocol for structured execution events
"""

from db_provisioner.core.base.results import (
    SUPPORTED_BACKENDS,
    DatabaseStatus,
    GrantStatus,
    Principal,
    ProvisioningResult,
    ReachabilityStatus,
    ServerEndpoint,
    StepOutcome,
)
from db_provisioner.core.base.tracking import (
    ExecutionEventTracker,
    emit_tracker_event,
)

__all__ = [
    # Inputs
    "ServerEndpoint",
    "Principal",
    "SUPPORTED_BACKENDS",
    # Outcomes
    "ReachabilityStatus",
    "DatabaseStatus",
    "GrantStatus",
    "StepOutcome",
    "ProvisioningResult",
    # Tracking
    "ExecutionEventTracker",
    "emit_tracker_event",
]
