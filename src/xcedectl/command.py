"""xcede command-line construction."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

PIPEFAIL = "(set -o pipefail) 2>/dev/null && set -o pipefail;"


@dataclass(frozen=True)
class Action:
    """A named xcede subcommand and how it is presented."""
    name: str
    status: str
    title: str
    # build/test output is beautified; run output is app logs and stays raw
    beautify: bool = True
    launches_app: bool = False


ACTIONS: Dict[str, Action] = {
    "build": Action("build", "Building...", "Xcode Build"),
    "run": Action("run", "Running...", "Xcode Run", beautify=False, launches_app=True),
    "buildrun": Action("buildrun", "Building & Running...", "Xcode Build & Run", beautify=False, launches_app=True),
    "test": Action("test", "Testing...", "Xcode Test"),
}


def get_action(name: str) -> Action:
    try:
        return ACTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown action {name!r} (expected one of: {', '.join(ACTIONS)})") from None


@dataclass(frozen=True)
class Invocation:
    command: str
    requires: List[str] = field(default_factory=list)


def build_command(
    action: str | Action,
    settings: Mapping[str, str],
    *,
    executable: str = "xcede",
    beautifier: Optional[str] = None,
) -> Invocation:
    """
    Compose the shell command for an action.

    Args:
        action: Action name or Action.
        settings: Parsed .xcrc values; scheme, platform and device are used.
        executable: The xcede binary.
        beautifier: Optional output formatter to pipe through (xcbeautify).

    Returns:
        Invocation with the command string and the executables it needs.
    """
    act = action if isinstance(action, Action) else get_action(action)

    parts = [shlex.quote(executable), act.name]
    scheme = settings.get("scheme")
    platform = settings.get("platform")
    device = settings.get("device")

    if scheme:
        parts += ["--scheme", shlex.quote(scheme)]
    if platform:
        parts += ["--platform", shlex.quote(platform)]
    if device and platform != "mac":
        parts += ["--device", shlex.quote(device)]

    command = " ".join(parts)
    requires = [executable]

    if beautifier:
        # pipefail only where the shell has it (dash does not)
        command = f"{PIPEFAIL} {command} | {shlex.quote(beautifier)}"
        requires.append(beautifier)

    return Invocation(command=command, requires=requires)
