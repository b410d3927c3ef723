# model.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .orchestrator import SpawnFailure


# Reported to the sink of a job that was stopped (128 + SIGTERM).
EXIT_CANCELLED = 143

# Reported when the process could not be created at all.
EXIT_SPAWN_FAILED = -1


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class Stream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class JobHandle:
    """Opaque identifier for one invocation. Compared by id only."""
    id: int

    def __str__(self) -> str:
        return f"job#{self.id}"


@dataclass
class Job:
    """
    One external-process invocation and its tracked lifecycle.

    Output is never stored here: every chunk goes straight to the sink.
    Fields are only mutated on the caller's dispatch context.
    """
    handle: JobHandle
    command: str
    cwd: str
    requires: List[str] = field(default_factory=list)

    state: JobState = JobState.RUNNING
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    exit_code: Optional[int] = None
    error: Optional["SpawnFailure"] = None

    # monotonic start, used for elapsed time only
    _t0: float = field(default_factory=time.monotonic, repr=False)
    _t1: Optional[float] = field(default=None, repr=False)

    @property
    def elapsed(self) -> float:
        end = self._t1 if self._t1 is not None else time.monotonic()
        return end - self._t0

    @property
    def exited(self) -> bool:
        return self.exit_code is not None

    def mark_finished(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.finished_at = time.time()
        self._t1 = time.monotonic()


class Sink:
    """
    Receiver for one job's output and exit notification.

    All callbacks run on the orchestrator owner's thread, one at a time,
    so implementations need no locking of their own.
    """

    def on_start(self, job: Job) -> None:
        """Called inside start() once the job is running."""

    def on_output(self, stream: Stream, lines: Sequence[str]) -> None:
        """Called with a batch of complete, CR-stripped lines."""

    def on_exit(self, code: int) -> None:
        """Called exactly once, after every output batch for the job."""


def normalize_exit_code(returncode: int) -> int:
    """Map Popen's negative signal codes to the shell convention (128 + signum)."""
    if returncode < 0:
        return 128 - returncode
    return returncode
