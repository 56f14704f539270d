"""Platform adapters that check and start the database server.

Classes:
    ServiceController: Interface with the bounded start-and-wait logic
    SqlLocalDbController: SQL Server Express LocalDB instances
    WindowsServiceController: SQL Server Windows services
    SystemdServiceController: systemd units (SQL Server on Linux)
    NullServiceController: Servers the tool does not manage
"""

import socket
import sys
from typing import Optional

from db_provisioner.core.base.results import ServerEndpoint
from db_provisioner.core.base.tracking import ExecutionEventTracker
from db_provisioner.core.config.models import ServiceConfig
from db_provisioner.infrastructure.service.base import (
    NullServiceController,
    Runner,
    ServiceController,
)
from db_provisioner.infrastructure.service.localdb import (
    DEFAULT_INSTANCE,
    SqlLocalDbController,
)
from db_provisioner.infrastructure.service.systemd import (
    DEFAULT_UNIT,
    SystemdServiceController,
)
from db_provisioner.infrastructure.service.windows import (
    WindowsServiceController,
    service_name_for,
)

_LOCAL_HOSTS = {".", "(local)", "localhost", "127.0.0.1", "::1"}


def is_local_host(host: str) -> bool:
    """Whether an endpoint host names this machine."""
    name = host.split(",", 1)[0].strip().lower()
    if name.startswith("tcp:"):
        name = name[4:]
    return name in _LOCAL_HOSTS or name == socket.gethostname().lower()


def controller_for(
    service: ServiceConfig,
    endpoint: ServerEndpoint,
    *,
    tracker: Optional[ExecutionEventTracker] = None,
    runner: Optional[Runner] = None,
    platform: Optional[str] = None,
) -> ServiceController:
    """Pick the service controller for an endpoint.

    With ``controller: auto``, LocalDB endpoints use SqlLocalDB, local
    endpoints on Windows use the SQL Server Windows service and everything
    else (remote hosts, Snowflake accounts) is not managed.

    Args:
        service: Service configuration
        endpoint: Target endpoint
        tracker: Optional tracker receiving every command run
        runner: Optional ``subprocess.run`` replacement
        platform: Platform name (defaults to ``sys.platform``)
    """
    kind = service.controller
    platform = platform or sys.platform
    if kind == "auto":
        if endpoint.backend != "mssql":
            kind = "none"
        elif endpoint.is_localdb:
            kind = "localdb"
        elif platform.startswith("win") and is_local_host(endpoint.host):
            kind = "windows-service"
        else:
            kind = "none"

    if kind == "localdb":
        name = service.name or endpoint.instance or DEFAULT_INSTANCE
        return SqlLocalDbController(name, tracker=tracker, runner=runner)
    if kind == "windows-service":
        name = service.name or service_name_for(endpoint.instance)
        return WindowsServiceController(name, tracker=tracker, runner=runner)
    if kind == "systemd":
        name = service.name or DEFAULT_UNIT
        return SystemdServiceController(name, tracker=tracker, runner=runner)
    return NullServiceController(
        service.name or endpoint.address, tracker=tracker, runner=runner
    )


__all__ = [
    "ServiceController",
    "SqlLocalDbController",
    "WindowsServiceController",
    "SystemdServiceController",
    "NullServiceController",
    "controller_for",
    "is_local_host",
    "service_name_for",
]
