# orchestrator.py
from __future__ import annotations

import itertools
import logging
import os
import shlex
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import IO, Callable, Dict, List, Optional, Sequence

from .dispatch import Dispatcher
from .model import (
    EXIT_CANCELLED,
    EXIT_SPAWN_FAILED,
    Job,
    JobHandle,
    JobState,
    Sink,
    Stream,
    normalize_exit_code,
)
from .output import LineAssembler

logger = logging.getLogger(__name__)

StateListener = Callable[[JobState, Optional[JobHandle]], None]

READ_SIZE = 65536


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

TOOL_HINTS = {
    "xcede": "Install xcede from https://github.com/XcodeClub/xcede or fix PATH.",
    "xcbeautify": "Install xcbeautify (e.g., brew install xcbeautify) or pass --no-beautify.",
    "sh": "A POSIX shell is required at /bin/sh.",
}


@dataclass
class CommandNotFound(Exception):
    """Required executable is not on PATH. Raised before anything is spawned."""
    command: str
    hint: str | None = None

    def __str__(self) -> str:
        msg = f"{self.command} is not installed or not on PATH"
        if self.hint:
            msg += f". {self.hint}"
        return msg


@dataclass
class SpawnFailure(Exception):
    """
    The process could not be created even though the executable exists.

    Never raised out of start(); it is attached to Job.error and the sink
    sees on_exit(EXIT_SPAWN_FAILED).
    """
    command: str
    cwd: str
    reason: str

    def __str__(self) -> str:
        return f"failed to start '{self.command}' in {self.cwd}: {self.reason}"


# Shell keywords and special builtins: never looked up on PATH.
SHELL_BUILTINS = frozenset({
    "!", "{", "}", "(", "case", "do", "done", "elif", "else", "esac", "fi",
    "for", "if", "in", "then", "until", "while",
    ".", ":", "break", "cd", "continue", "eval", "exec", "exit", "export",
    "readonly", "return", "set", "shift", "times", "trap", "umask", "unset",
})


def _first_word(command: str) -> Optional[str]:
    try:
        words = shlex.split(command)
    except ValueError:
        words = command.split()
    for w in words:
        # skip leading VAR=value assignments
        if "=" in w and not w.startswith("="):
            continue
        if w in SHELL_BUILTINS or w.startswith(("(", "{")):
            return None
        return w
    return None


# ----------------------------------------------------------------------
# Process side (worker threads)
# ----------------------------------------------------------------------

class _JobRunner(threading.Thread):
    """
    Owns the subprocess for one job.

    Spawns it, relays both pipes through on_output, and reports the exit
    only after both readers have hit EOF, so the exit is always queued
    behind the last output batch.
    """

    def __init__(
        self,
        job: Job,
        shell: str,
        kill_timeout: float,
        on_output: Callable[[Stream, List[str]], None],
        on_exit: Callable[[int, Optional[SpawnFailure]], None],
    ):
        super().__init__(name=f"xcedectl-{job.handle}", daemon=True)
        self.job_handle = job.handle
        self.command = job.command
        self.cwd = job.cwd
        self.shell = shell
        self.kill_timeout = kill_timeout
        self._on_output = on_output
        self._on_exit = on_exit
        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._stop_evt = threading.Event()
        self._kill_timer: Optional[threading.Timer] = None
        self._done = threading.Event()

    def run(self) -> None:
        try:
            proc = subprocess.Popen(
                [self.shell, "-c", self.command],
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=(os.name != "nt"),
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.warning("%s: spawn failed: %s", self.job_handle, e)
            self._on_exit(EXIT_SPAWN_FAILED, SpawnFailure(self.command, self.cwd, str(e)))
            return

        logger.debug("%s: started pid=%s: %s", self.job_handle, proc.pid, self.command)
        with self._lock:
            self._proc = proc
            stop_requested = self._stop_evt.is_set()
        if stop_requested:
            self._signal(proc)
            self._arm_kill_timer(proc)

        readers = [
            threading.Thread(target=self._read, args=(proc.stdout, Stream.STDOUT), daemon=True),
            threading.Thread(target=self._read, args=(proc.stderr, Stream.STDERR), daemon=True),
        ]
        for r in readers:
            r.start()

        returncode = proc.wait()
        for r in readers:
            r.join()

        self._done.set()
        if self._kill_timer is not None:
            self._kill_timer.cancel()

        code = normalize_exit_code(returncode)
        logger.debug("%s: exited with %s", self.job_handle, code)
        self._on_exit(code, None)

    def _read(self, pipe: IO[bytes], stream: Stream) -> None:
        assembler = LineAssembler()
        fd = pipe.fileno()
        try:
            while True:
                data = os.read(fd, READ_SIZE)
                if not data:
                    break
                lines = assembler.feed(data)
                if lines:
                    self._on_output(stream, lines)
            tail = assembler.flush()
            if tail:
                self._on_output(stream, tail)
        finally:
            pipe.close()

    def terminate(self) -> None:
        """Ask the process (group) to stop; escalate to SIGKILL after kill_timeout."""
        self._stop_evt.set()
        with self._lock:
            proc = self._proc
        if proc is None or self._done.is_set():
            return
        # signal the group even if the shell already exited: children may
        # still hold the pipes open
        self._signal(proc)
        self._arm_kill_timer(proc)

    def _arm_kill_timer(self, proc: subprocess.Popen) -> None:
        with self._lock:
            if self._kill_timer is not None:
                return
            self._kill_timer = threading.Timer(self.kill_timeout, self._kill, args=(proc,))
            self._kill_timer.daemon = True
            self._kill_timer.start()

    def _signal(self, proc: subprocess.Popen, sig: int = signal.SIGTERM) -> None:
        logger.debug("%s: sending signal %s to pid=%s", self.job_handle, sig, proc.pid)
        try:
            if os.name != "nt":
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass

    def _kill(self, proc: subprocess.Popen) -> None:
        if self._done.is_set():
            return
        logger.warning("%s: did not stop within %.1fs, killing", self.job_handle, self.kill_timeout)
        self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

class JobOrchestrator:
    """
    Runs at most one external command at a time and relays its output.

    start/cancel are called from the owner's thread. Output and exit
    notifications are queued by worker threads and delivered to sinks on
    the owner's thread from process_events() / wait().
    """

    def __init__(
        self,
        *,
        shell: str = "/bin/sh",
        grace_period: float = 3.0,
        kill_timeout: float = 5.0,
        which: Callable[[str], Optional[str]] | None = None,
        dispatcher: Dispatcher | None = None,
    ):
        self.shell = shell
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout
        self._which = which or shutil.which
        self.dispatcher = dispatcher or Dispatcher()

        self._ids = itertools.count(1)
        self._active: Optional[Job] = None
        self._jobs: Dict[JobHandle, Job] = {}
        self._sinks: Dict[JobHandle, Sink] = {}
        self._runners: Dict[JobHandle, _JobRunner] = {}
        self._listeners: List[StateListener] = []

    # -- state ---------------------------------------------------------

    def current_state(self) -> JobState:
        if self._active is None:
            return JobState.IDLE
        return self._active.state

    @property
    def active_handle(self) -> Optional[JobHandle]:
        return self._active.handle if self._active is not None else None

    def job(self, handle: JobHandle) -> Optional[Job]:
        return self._jobs.get(handle)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.current_state()
        handle = self.active_handle
        for listener in list(self._listeners):
            listener(state, handle)

    # -- lifecycle -----------------------------------------------------

    def check_requirements(self, requires: Sequence[str], cwd: str | os.PathLike | None = None) -> None:
        """Raise CommandNotFound for the first missing executable.

        Names containing a path separator are resolved against `cwd` (the
        job's working directory) rather than looked up on PATH.
        """
        for exe in requires:
            if os.sep in exe or (os.altsep and os.altsep in exe):
                path = os.path.join(os.fspath(cwd) if cwd is not None else os.getcwd(), exe)
                if os.path.isfile(path) and os.access(path, os.X_OK):
                    continue
            elif self._which(exe):
                continue
            raise CommandNotFound(exe, TOOL_HINTS.get(exe))

    def start(
        self,
        command: str,
        cwd: str | os.PathLike | None = None,
        sink: Sink | None = None,
        *,
        requires: Sequence[str] | None = None,
    ) -> JobHandle:
        """
        Start `command` through the shell, cancelling any running job first.

        Args:
            command: Fully composed shell command (pipes allowed).
            cwd: Working directory; defaults to the current directory.
            sink: Receives output and exit for this job only.
            requires: Executables that must be on PATH (or, for paths, in
                `cwd`). Defaults to the first word of the command unless
                that is a shell keyword or builtin.

        Returns:
            Handle of the new job, already in RUNNING state.

        Raises:
            CommandNotFound: A required executable is missing; nothing is
                spawned and the current job (if any) is left alone.
        """
        if requires is None:
            first = _first_word(command)
            requires = [first] if first else []
        cwd = os.fspath(cwd) if cwd is not None else os.getcwd()
        self.check_requirements(requires, cwd)

        if self._active is not None and self._active.state is JobState.RUNNING:
            logger.debug("%s: superseded by new start", self._active.handle)
            self._cancel_job(self._active, notify=False)

        self._prune()

        handle = JobHandle(next(self._ids))
        job = Job(
            handle=handle,
            command=command,
            cwd=cwd,
            requires=list(requires),
        )
        sink = sink or Sink()
        self._jobs[handle] = job
        self._sinks[handle] = sink
        self._active = job

        runner = _JobRunner(
            job,
            shell=self.shell,
            kill_timeout=self.kill_timeout,
            on_output=partial(self._post_output, job),
            on_exit=partial(self._post_exit, job),
        )
        self._runners[handle] = runner
        runner.start()

        sink.on_start(job)
        self._notify()
        return handle

    def cancel(self, handle: JobHandle) -> None:
        """Stop the job if it is the active, running one; otherwise do nothing."""
        job = self._active
        if job is None or job.handle != handle or job.state.is_terminal:
            return
        self._cancel_job(job, notify=True)

    def _cancel_job(self, job: Job, *, notify: bool) -> None:
        job.state = JobState.CANCELLED
        runner = self._runners.get(job.handle)
        if runner is not None:
            runner.terminate()
        logger.debug("%s: cancelled", job.handle)
        if notify:
            self._notify()

    def shutdown(self) -> None:
        if self._active is not None:
            self.cancel(self._active.handle)

    def _prune(self) -> None:
        for h in [h for h, j in self._jobs.items() if j.exited]:
            self._jobs.pop(h, None)
            self._sinks.pop(h, None)
            self._runners.pop(h, None)

    # -- worker -> owner thread ----------------------------------------

    def _post_output(self, job: Job, stream: Stream, lines: List[str]) -> None:
        self.dispatcher.post(partial(self._deliver_output, job, stream, lines))

    def _post_exit(self, job: Job, code: int, error: Optional[SpawnFailure]) -> None:
        self.dispatcher.post(partial(self._deliver_exit, job, code, error))

    def _deliver_output(self, job: Job, stream: Stream, lines: List[str]) -> None:
        # cancelled or superseded jobs deliver nothing past the cancel point
        if job.state is not JobState.RUNNING:
            return
        self._sinks[job.handle].on_output(stream, lines)

    def _deliver_exit(self, job: Job, code: int, error: Optional[SpawnFailure]) -> None:
        if job.exited:
            return
        if job.state is JobState.CANCELLED:
            code = EXIT_CANCELLED
        else:
            job.state = JobState.SUCCEEDED if code == 0 else JobState.FAILED
        job.error = error
        job.mark_finished(code)
        self._runners.pop(job.handle, None)

        is_active = self._active is job
        if is_active:
            self._notify()
            self.dispatcher.call_later(self.grace_period, partial(self._reset_if_current, job.handle))
        self._sinks[job.handle].on_exit(code)

    def _reset_if_current(self, handle: JobHandle) -> None:
        if self._active is None or self._active.handle != handle:
            return
        self._active = None
        self._notify()

    # -- pumping -------------------------------------------------------

    def process_events(self, timeout: float = 0.0) -> int:
        return self.dispatcher.run_pending(timeout)

    def wait(self, handle: JobHandle, timeout: float | None = None) -> Job:
        """
        Deliver events on this thread until the job's on_exit has run.

        Raises:
            KeyError: unknown (or already pruned) handle
            TimeoutError: the job did not exit within `timeout` seconds
        """
        job = self._jobs[handle]
        remaining = timeout
        while not job.exited:
            if remaining is not None and remaining <= 0:
                raise TimeoutError(f"{handle} still running after {timeout}s")
            step = 0.1 if remaining is None else min(0.1, remaining)
            t0 = time.monotonic()
            self.dispatcher.run_pending(step)
            if remaining is not None:
                remaining -= time.monotonic() - t0
        return job

    def __enter__(self) -> "JobOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
