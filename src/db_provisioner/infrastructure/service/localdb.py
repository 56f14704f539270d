"""SQL Server Express LocalDB instance control via ``SqlLocalDB``."""

import re
import subprocess
import time
from typing import Optional

from db_provisioner.core.exceptions import EndpointUnreachableError
from db_provisioner.infrastructure.service.base import (
    COMMAND_TIMEOUT,
    ServiceController,
)

_STATE_LINE = re.compile(r"^\s*State:\s*(\S+)", re.IGNORECASE | re.MULTILINE)

DEFAULT_INSTANCE = "MSSQLLocalDB"


class SqlLocalDbController(ServiceController):
    """Check and start a LocalDB instance.

    ``SqlLocalDB info <instance>`` reports ``State: Running`` or
    ``State: Stopped``, and fails for an unknown instance. Only an instance
    that ``info`` reported missing is created on start; a failed start of
    an existing instance is reported as is.

    Attributes:
        exists: Whether the last ``info`` found the instance (None before
            the first check)
    """

    kind = "localdb"
    executable = "SqlLocalDB"
    not_installed_hint = (
        "Install SQL Server Express LocalDB, or point --endpoint at another "
        "SQL Server instance."
    )
    exists: Optional[bool] = None

    def state(self, timeout: float = COMMAND_TIMEOUT) -> Optional[str]:
        """Return the instance state reported by ``SqlLocalDB info``.

        Returns:
            Lower-cased state, or None when the instance does not exist
        """
        result = self._run([self.executable, "info", self.name], timeout=timeout)
        if result.returncode != 0:
            self.logger.debug(
                "LocalDB instance not found",
                extra={"instance": self.name, "output": self._output(result)},
            )
            self.exists = False
            return None
        self.exists = True
        match = _STATE_LINE.search(result.stdout or "")
        return match.group(1).lower() if match else None

    def is_running(self, timeout: float = COMMAND_TIMEOUT) -> bool:
        return self.state(timeout) == "running"

    def start(self, timeout: float) -> None:
        began = time.monotonic()

        def left() -> float:
            return timeout - (time.monotonic() - began)

        result = self._run([self.executable, "start", self.name], timeout=timeout)
        if result.returncode == 0:
            return

        if self.exists is None and left() > 0:
            self.state(left())
        if self.exists is not False or left() <= 0:
            raise self._start_failed(result)

        self.logger.info(
            "Creating LocalDB instance",
            extra={"instance": self.name, "output": self._output(result)},
        )
        created = self._run(
            [self.executable, "create", self.name, "-s"], timeout=left()
        )
        if created.returncode != 0:
            raise self._start_failed(created, result)

    def _start_failed(
        self, *results: "subprocess.CompletedProcess[str]"
    ) -> EndpointUnreachableError:
        output = next(
            (self._output(result) for result in results if self._output(result)),
            f"LocalDB instance {self.name} could not be started",
        )
        return EndpointUnreachableError(
            output,
            context={"instance": self.name},
            remediation=(
                f"Run 'SqlLocalDB start {self.name}' to see why the "
                "instance does not start."
            ),
        )
