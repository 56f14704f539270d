"""Execution event tracking.

Provisioners and service controllers report every command they send to an
optional tracker. The transcript writer in ``db_provisioner.utils.transcript``
is the implementation shipped with the tool; tests use in-memory ones.

Events emitted:
    lookup_executed: a catalog query (payload: ``sql`` plus context)
    statement_executed: any other statement
    database_created, login_created, database_user_created,
    owner_role_granted: the state-changing statement of each step
    service_command: a platform service command (payload: ``command``)
"""

from __future__ import annotations

from typing import Dict, Protocol

from db_provisioner.utils.logging import get_logger

logger = get_logger(__name__)


class ExecutionEventTracker(Protocol):
    """Receiver of execution events."""

    def record_event(
        self, component: str, event: str, payload: Dict[str, object]
    ) -> None:
        """Record one event emitted by ``component``."""
        ...


def emit_tracker_event(
    tracker: ExecutionEventTracker | None,
    component: str,
    event: str,
    payload: Dict[str, object],
) -> None:
    """Send an event to the tracker, if any.

    Tracker failures are logged and never reach the caller; the command the
    event describes is issued either way.
    """
    if tracker is None:
        return

    try:
        tracker.record_event(component=component, event=event, payload=payload)
    except Exception:
        logger.exception(
            "Tracker failed to record event",
            extra={"component": component, "event": event},
        )
