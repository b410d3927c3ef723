"""Status text for status-line style displays."""

from __future__ import annotations

from typing import Callable, List, Optional

from xcedectl.model import JobHandle, JobState
from xcedectl.orchestrator import JobOrchestrator

STATUS_TEXT = {
    JobState.IDLE: "Idle",
    JobState.SUCCEEDED: "Success",
    JobState.FAILED: "Failed",
    JobState.CANCELLED: "Stopped",
}


class StatusLine:
    """
    Follows an orchestrator and keeps a short human-readable status.

    While a job runs the text is the label passed to set_running_label()
    (e.g. "Building..."), otherwise one of STATUS_TEXT.
    """

    def __init__(self, orchestrator: JobOrchestrator):
        self.text = STATUS_TEXT[JobState.IDLE]
        self.history: List[str] = []
        self._running_label = "Running..."
        self._callbacks: List[Callable[[str], None]] = []
        self._unsubscribe = orchestrator.subscribe(self._on_state)
        self._on_state(orchestrator.current_state(), orchestrator.active_handle)

    def set_running_label(self, label: str) -> None:
        self._running_label = label

    def on_change(self, callback: Callable[[str], None]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        self._unsubscribe()

    def _on_state(self, state: JobState, handle: Optional[JobHandle]) -> None:
        text = self._running_label if state is JobState.RUNNING else STATUS_TEXT[state]
        if text == self.text and self.history:
            return
        self.text = text
        self.history.append(text)
        for cb in list(self._callbacks):
            cb(text)
