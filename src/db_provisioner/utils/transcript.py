"""Plain-text transcript of a provisioning run.

The transcript lists every statement sent to the server and every service
command run, one timestamped line each, so an operator can see exactly
what a run did. It implements the ``ExecutionEventTracker`` protocol.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union


class TranscriptTracker:
    """Append execution events to a transcript file.

    Attributes:
        path: Transcript file; parent directories are created on first write
    """

    def __init__(
        self,
        path: Union[str, Path],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            path: Transcript file path
            clock: Optional callable returning the current time (for tests)
        """
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record_event(
        self, component: str, event: str, payload: Dict[str, object]
    ) -> None:
        """Append one line describing the event."""
        self.write_line(f"[{component}] {event}: {self._describe(payload)}")

    def write_line(self, text: str) -> None:
        """Append a timestamped line to the transcript."""
        timestamp = self._clock().isoformat(timespec="seconds")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(f"{timestamp} {text}\n")

    @staticmethod
    def _describe(payload: Dict[str, object]) -> str:
        for key in ("sql", "command"):
            value = payload.get(key)
            if value:
                return str(value)
        return ", ".join(f"{k}={v}" for k, v in payload.items())
