"""Server session interface and scoped acquisition.

A provisioning run opens exactly one session and releases it when the run
ends, whether it succeeded or failed.

Classes:
    ServerSession: Protocol implemented by backend sessions
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Union

from db_provisioner.utils.logging import get_logger

Params = Union[Dict[str, Any], Sequence[Any]]

logger = get_logger(__name__)


class ServerSession(Protocol):
    """Protocol for a connection able to run provisioning statements."""

    def execute(
        self, sql: str, params: Optional[Params] = None
    ) -> List[Mapping[str, Any]]:
        """Run a statement and return its rows (empty when it returns none)."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


@contextmanager
def scoped_session(session: ServerSession) -> Iterator[ServerSession]:
    """Yield ``session`` and close it unconditionally on exit.

    A failure to close is logged and never replaces the outcome of the
    body: the body's own exception, if any, propagates unchanged.
    """
    try:
        yield session
    finally:
        try:
            session.close()
        except Exception:
            logger.exception("Failed to close server session")
