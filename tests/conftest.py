from __future__ import annotations

import time
from typing import Callable, List, Tuple

import pytest

from xcedectl.model import Sink, Stream
from xcedectl.orchestrator import JobOrchestrator


class RecordingSink(Sink):
    """Records every callback in arrival order."""

    def __init__(self):
        self.events: List[Tuple] = []
        self.started = None

    def on_start(self, job):
        self.started = job

    def on_output(self, stream, lines):
        self.events.append(("output", stream, list(lines)))

    def on_exit(self, code):
        self.events.append(("exit", code))

    def lines(self, stream: Stream | None = None) -> List[str]:
        out: List[str] = []
        for ev in self.events:
            if ev[0] == "output" and (stream is None or ev[1] is stream):
                out.extend(ev[2])
        return out

    @property
    def exits(self) -> List[int]:
        return [ev[1] for ev in self.events if ev[0] == "exit"]


def pump_until(orch: JobOrchestrator, predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        orch.process_events(0.05)
    return predicate()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def orch():
    o = JobOrchestrator(grace_period=0.1, kill_timeout=2.0)
    yield o
    o.shutdown()


@pytest.fixture
def make_sink():
    return RecordingSink


@pytest.fixture
def pump():
    return pump_until
