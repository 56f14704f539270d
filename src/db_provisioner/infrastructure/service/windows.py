"""Windows service control via ``sc.exe``."""

import re
from typing import Optional

from db_provisioner.core.exceptions import EndpointUnreachableError
from db_provisioner.infrastructure.service.base import (
    COMMAND_TIMEOUT,
    ServiceController,
)

_STATE_LINE = re.compile(r"STATE\s*:\s*\d+\s+(\w+)", re.IGNORECASE)

# sc.exe exit codes
ERROR_ACCESS_DENIED = 5
ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_DOES_NOT_EXIST = 1060

DEFAULT_SERVICE = "MSSQLSERVER"


def service_name_for(instance: Optional[str]) -> str:
    """Windows service name of a SQL Server instance."""
    if not instance or instance.upper() == DEFAULT_SERVICE:
        return DEFAULT_SERVICE
    return f"MSSQL${instance}"


class WindowsServiceController(ServiceController):
    """Check and start a SQL Server Windows service."""

    kind = "windows-service"
    not_installed_hint = (
        "Install SQL Server on this machine, or check the instance name in "
        "the endpoint."
    )

    def state(self, timeout: float = COMMAND_TIMEOUT) -> Optional[str]:
        """Return the service state reported by ``sc query``.

        Raises:
            EndpointUnreachableError: If the service does not exist
        """
        result = self._run(["sc", "query", self.name], timeout=timeout)
        if result.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
            raise self._not_installed()
        match = _STATE_LINE.search(result.stdout or "")
        return match.group(1).upper() if match else None

    def is_running(self, timeout: float = COMMAND_TIMEOUT) -> bool:
        return self.state(timeout) == "RUNNING"

    def start(self, timeout: float) -> None:
        result = self._run(["sc", "start", self.name], timeout=timeout)
        if result.returncode in (0, ERROR_SERVICE_ALREADY_RUNNING):
            return
        if result.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
            raise self._not_installed()

        remediation = None
        if result.returncode == ERROR_ACCESS_DENIED:
            remediation = (
                f"Starting {self.name} requires administrator rights; run "
                "from an elevated prompt or start the service manually."
            )
        raise EndpointUnreachableError(
            self._output(result) or f"Service {self.name} could not be started",
            context={"service": self.name, "returncode": result.returncode},
            remediation=remediation,
        )

    def _not_installed(self) -> EndpointUnreachableError:
        return EndpointUnreachableError(
            f"Service {self.name} is not installed",
            context={"service": self.name},
            remediation=self.not_installed_hint,
        )
