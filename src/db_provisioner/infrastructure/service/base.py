"""Shared tooling for database service controllers.

A controller answers two questions for the reachability step: is the
server process running, and can it be started. Platform specifics live in
subclasses; the bounded wait for a started server lives here.
"""

from __future__ import annotations

import subprocess
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

from db_provisioner.core.base.tracking import (
    ExecutionEventTracker,
    emit_tracker_event,
)
from db_provisioner.core.exceptions import EndpointUnreachableError
from db_provisioner.utils.logging import StructuredLogger, get_logger

Runner = Callable[..., "subprocess.CompletedProcess[str]"]

COMMAND_TIMEOUT = 60.0


class ServiceController(ABC):
    """Check and start the server process behind an endpoint.

    Attributes:
        name: Service, unit or instance name the controller manages
        logger: Structured logger
    """

    #: Human-readable controller kind used in messages.
    kind = "service"
    not_installed_hint = "Install the database server, or check the endpoint name."

    def __init__(
        self,
        name: str,
        *,
        tracker: Optional[ExecutionEventTracker] = None,
        runner: Optional[Runner] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            name: Service, unit or instance name
            tracker: Optional tracker receiving every command run
            runner: Callable with the ``subprocess.run`` signature (for tests)
        """
        if not name:
            raise ValueError("Service name cannot be empty")
        self.name = name
        self.logger: StructuredLogger = get_logger(self.__class__.__module__)
        self._tracker = tracker
        self._runner: Runner = runner or subprocess.run

    @abstractmethod
    def is_running(self, timeout: float = COMMAND_TIMEOUT) -> bool:
        """Return whether the server process is running.

        Args:
            timeout: Seconds the state command may take

        Raises:
            EndpointUnreachableError: If the server is not installed
        """

    @abstractmethod
    def start(self, timeout: float) -> None:
        """Issue the platform start command.

        Args:
            timeout: Seconds the start command may take in total

        Raises:
            EndpointUnreachableError: If the start command fails
        """

    def ensure_running(
        self,
        timeout: float,
        poll_interval: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> bool:
        """Make sure the server is running, starting it if needed.

        The wait is bounded: every command gets only the time left before
        ``timeout`` seconds have passed since this call began, and no
        command is issued once that time is up.

        Args:
            timeout: Maximum seconds to wait for the server to come up
            poll_interval: Seconds between running-state checks

        Returns:
            True if this call started the server, False if it was running

        Raises:
            EndpointUnreachableError: If the server cannot be started within
                ``timeout`` seconds
        """
        deadline = clock() + timeout
        if self.is_running(timeout):
            self.logger.info(
                "Server is running", extra={"service": self.name, "kind": self.kind}
            )
            return False

        self.logger.info(
            "Starting server",
            extra={"service": self.name, "kind": self.kind, "timeout": timeout},
        )
        remaining = deadline - clock()
        if remaining > 0:
            self.start(remaining)

        while True:
            remaining = deadline - clock()
            if remaining <= 0:
                break
            if self.is_running(remaining):
                self.logger.info("Server started", extra={"service": self.name})
                return True
            remaining = deadline - clock()
            if remaining <= 0:
                break
            sleep(min(poll_interval, remaining))

        raise EndpointUnreachableError(
            f"Server {self.name} did not start within {timeout:g} seconds",
            context={"service": self.name, "kind": self.kind},
            remediation=(
                f"Start {self.name} manually, or raise startup_timeout and retry."
            ),
        )

    # ------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------
    def _run(
        self, args: Sequence[str], timeout: float = COMMAND_TIMEOUT
    ) -> "subprocess.CompletedProcess[str]":
        """Run a platform command without raising on a non-zero exit.

        Raises:
            EndpointUnreachableError: If the command is not installed,
                cannot be run or does not finish within ``timeout`` seconds
        """
        command: List[str] = list(args)
        display = " ".join(command)
        self.logger.debug("Running command", extra={"command": display})
        self._emit_event("service_command", {"command": display})
        try:
            return self._runner(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            raise EndpointUnreachableError(
                f"{command[0]} was not found; the database server does not "
                "appear to be installed",
                context={"command": display},
                original_error=exc,
                remediation=self.not_installed_hint,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise EndpointUnreachableError(
                f"{display} did not finish within {timeout:g} seconds",
                context={"command": display},
                original_error=exc,
            ) from exc
        except OSError as exc:
            raise EndpointUnreachableError(
                f"{display} could not be run: {exc}",
                context={"command": display},
                original_error=exc,
            ) from exc

    @staticmethod
    def _output(result: "subprocess.CompletedProcess[str]") -> str:
        return "\n".join(
            part.strip() for part in (result.stdout, result.stderr) if part
        ).strip()

    def _emit_event(self, event: str, payload: Dict[str, Any]) -> None:
        if not self._tracker:
            return
        emit_tracker_event(
            tracker=self._tracker,
            component=self.__class__.__name__,
            event=event,
            payload=payload,
        )


class NullServiceController(ServiceController):
    """Controller for servers the tool does not manage (remote or cloud).

    The server is assumed to be running; reachability is then decided by
    whether a session can be opened.
    """

    kind = "none"

    def __init__(self, name: str = "remote", **kwargs: Any) -> None:
        """Initialize the controller."""
        super().__init__(name, **kwargs)

    def is_running(self, timeout: float = COMMAND_TIMEOUT) -> bool:
        return True

    def start(self, timeout: float) -> None:
        return None
