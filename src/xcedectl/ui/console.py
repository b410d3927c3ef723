"""Console output formatting utilities for xcedectl."""

from __future__ import annotations

import sys
from typing import Mapping, Optional, Sequence

from xcedectl.command import Action
from xcedectl.model import EXIT_SPAWN_FAILED, Job, JobState, Sink, Stream

SEPARATOR = "-" * 40

# Output lines that mean the app has been launched (run/buildrun)
LAUNCH_MARKERS = ("Launched", "Running")

SHELL_HINTS = {
    126: "A command in the pipeline is not executable.",
    127: "A command in the pipeline was not found (check PATH).",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_job_header(
        self,
        command: str,
        cwd: str,
        settings: Mapping[str, str],
    ) -> None:
        """Print what is about to run."""
        print(f"Running: {command}")
        print(f"Working directory: {cwd}")
        print(
            "Config: "
            f"scheme={settings.get('scheme') or 'none'}, "
            f"platform={settings.get('platform') or 'none'}, "
            f"device={settings.get('device') or 'none'}"
        )
        print(SEPARATOR)
        print()

    def print_output(self, stream: Stream, lines: Sequence[str]) -> None:
        """Relay process output; stderr lines go to stderr."""
        out = sys.stderr if stream is Stream.STDERR else sys.stdout
        for line in lines:
            print(line, file=out)
        out.flush()

    def print_success(self, title: str, elapsed: Optional[float] = None) -> None:
        """Print success message."""
        print()
        print(SEPARATOR)
        print(f"✓ {title} completed successfully")
        if elapsed is not None:
            print(f"Time: {elapsed:.3f}s")
        print(SEPARATOR)

    def print_failure(
        self,
        title: str,
        exit_code: int,
        elapsed: Optional[float] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            title: Action title
            exit_code: Process exit code
            elapsed: Optional run time in seconds
            hint: Optional hint for user
        """
        print()
        print(SEPARATOR)
        print(f"✗ {title} failed with exit code: {exit_code}")
        if elapsed is not None:
            print(f"Time: {elapsed:.3f}s")
        if hint:
            print(f"Hint: {hint}")
        print(SEPARATOR)

    def print_stopped(self, title: str) -> None:
        print()
        print(SEPARATOR)
        print(f"Stopped: {title}")
        print(SEPARATOR)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


class ConsoleSink(Sink):
    """Prints one job's output and outcome to the console."""

    def __init__(
        self,
        console: Console,
        action: Action,
        settings: Optional[Mapping[str, str]] = None,
        *,
        notify_on_success: bool = True,
        notify_on_failure: bool = True,
    ):
        self.console = console
        self.action = action
        self.settings = dict(settings or {})
        self.notify_on_success = notify_on_success
        self.notify_on_failure = notify_on_failure
        self.job: Optional[Job] = None
        self.exit_code: Optional[int] = None
        self.app_launched = False

    def on_start(self, job: Job) -> None:
        self.job = job
        self.console.print_job_header(job.command, job.cwd, self.settings)

    def on_output(self, stream: Stream, lines: Sequence[str]) -> None:
        self.console.print_output(stream, lines)
        if self.action.launches_app and not self.app_launched and stream is Stream.STDOUT:
            if any(marker in line for line in lines for marker in LAUNCH_MARKERS):
                self.app_launched = True
                self.console.print_info("App is running...")

    def on_exit(self, code: int) -> None:
        self.exit_code = code
        elapsed = self.job.elapsed if self.job is not None else None

        if self.job is not None and self.job.state is JobState.CANCELLED:
            self.console.print_stopped(self.action.title)
        elif code == 0:
            self.console.print_success(self.action.title, elapsed)
            if self.notify_on_success:
                self.console.print_info(f"{self.action.title} succeeded in {elapsed or 0.0:.1f}s")
        elif code == EXIT_SPAWN_FAILED:
            error = self.job.error if self.job is not None else None
            self.console.print_error(
                f"Failed to start {self.action.name}",
                str(error) if error else "the process could not be created",
            )
        else:
            hint = SHELL_HINTS.get(code)
            self.console.print_failure(self.action.title, code, elapsed, hint=hint)
            if self.notify_on_failure:
                self.console.print_error(f"{self.action.title} failed", f"exit code: {code}")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
