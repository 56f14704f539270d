"""systemd unit control via ``systemctl``."""

from db_provisioner.core.exceptions import EndpointUnreachableError
from db_provisioner.infrastructure.service.base import (
    COMMAND_TIMEOUT,
    ServiceController,
)

DEFAULT_UNIT = "mssql-server"

# systemctl exit status for an unknown unit
UNIT_NOT_FOUND = 5


class SystemdServiceController(ServiceController):
    """Check and start a systemd unit such as ``mssql-server``."""

    kind = "systemd"
    not_installed_hint = (
        "Install the mssql-server package, or set service.name to the unit "
        "running the database server."
    )

    def is_running(self, timeout: float = COMMAND_TIMEOUT) -> bool:
        result = self._run(
            ["systemctl", "is-active", "--quiet", self.name], timeout=timeout
        )
        return result.returncode == 0

    def start(self, timeout: float) -> None:
        result = self._run(["systemctl", "start", self.name], timeout=timeout)
        if result.returncode == 0:
            return

        remediation = None
        if result.returncode == UNIT_NOT_FOUND:
            remediation = self.not_installed_hint
        elif "access denied" in self._output(result).lower():
            remediation = f"Run 'sudo systemctl start {self.name}' and retry."
        raise EndpointUnreachableError(
            self._output(result) or f"Unit {self.name} could not be started",
            context={"unit": self.name, "returncode": result.returncode},
            remediation=remediation,
        )
