"""Process-wide controller diagnostics."""

import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from habitat.core.config import get_settings


@dataclass(frozen=True)
class Diagnostics:
    """Snapshot served by the diagnostics endpoint."""

    last_event: datetime
    reporter: str


class DiagnosticsRecorder:
    """Lock-guarded diagnostics cell.

    Written by the reconciler whenever it publishes an event, read by the
    HTTP diagnostics route. Readers always get an immutable snapshot.
    """

    def __init__(self, reporter: str) -> None:
        self._lock = threading.RLock()
        self._diagnostics = Diagnostics(last_event=datetime.now(UTC), reporter=reporter)

    @property
    def reporter(self) -> str:
        return self.snapshot().reporter

    def snapshot(self) -> Diagnostics:
        with self._lock:
            return self._diagnostics

    def record_event(self, when: datetime | None = None) -> None:
        with self._lock:
            self._diagnostics = replace(
                self._diagnostics, last_event=when or datetime.now(UTC)
            )


# Global recorder instance
_diagnostics_recorder: DiagnosticsRecorder | None = None


def get_diagnostics_recorder() -> DiagnosticsRecorder:
    """Get the global DiagnosticsRecorder instance."""
    global _diagnostics_recorder
    if _diagnostics_recorder is None:
        _diagnostics_recorder = DiagnosticsRecorder(reporter=get_settings().reporter)
    return _diagnostics_recorder
