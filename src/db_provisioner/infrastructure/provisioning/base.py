"""Shared tooling for database server provisioners."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from db_provisioner.core.base.tracking import (
    ExecutionEventTracker,
    emit_tracker_event,
)
from db_provisioner.core.exceptions import ServerCommandError
from db_provisioner.core.session import ServerSession
from db_provisioner.infrastructure.dialects import Dialect, Statement
from db_provisioner.utils.logging import StructuredLogger, get_logger


class BaseProvisioner:
    """Provide shared safeguards for provisioning helpers."""

    def __init__(
        self,
        session: ServerSession,
        dialect: Dialect,
        tracker: Optional[ExecutionEventTracker] = None,
    ) -> None:
        """Initialize `BaseProvisioner` with a server session and dialect."""
        if session is None:
            raise ValueError("Session cannot be None")
        if dialect is None:
            raise ValueError("Dialect cannot be None")
        self.session = session
        self.dialect = dialect
        self.logger: StructuredLogger = get_logger(self.__class__.__module__)
        self._tracker = tracker

    def _emit_event(self, event: str, payload: Dict[str, Any]) -> None:
        if not self._tracker:
            return
        emit_tracker_event(
            tracker=self._tracker,
            component=self.__class__.__name__,
            event=event,
            payload=payload,
        )

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------
    def _execute(
        self,
        statement: Statement,
        *,
        context: Optional[Dict[str, Any]] = None,
        emit_event: str = "statement_executed",
    ) -> List[Mapping[str, Any]]:
        """Execute a statement, wrapping server failures in ServerCommandError.

        The event is emitted before execution so the transcript shows a
        statement even when the server rejects it.
        """
        self.logger.debug(
            "Executing SQL", extra={"sql": statement.display, "context": context}
        )
        event_payload: Dict[str, Any] = {"sql": statement.display}
        if context:
            event_payload.update(context)
        self._emit_event(emit_event, event_payload)
        try:
            return self.session.execute(statement.sql, statement.params)
        except Exception as exc:
            error_context = dict(context or {})
            raise ServerCommandError(
                "Server command failed",
                sql=statement.display,
                context=error_context,
                original_error=exc,
            ) from exc

    def _matching(
        self,
        statement: Statement,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[Mapping[str, Any]]:
        """Execute a lookup and keep only rows satisfying its exact match."""
        rows = self._execute(statement, context=context, emit_event="lookup_executed")
        return statement.matching_rows(rows)
