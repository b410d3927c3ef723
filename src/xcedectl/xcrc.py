# xcrc.py
# Project discovery and the .xcrc settings file shared with other xcede
# front-ends (the Zed extension reads .zed/xcrc).

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

XCRC_PATHS = (".xcrc", ".zed/xcrc")
MAX_DEPTH = 10

_SETTING_RE = re.compile(r"^\s*([A-Za-z0-9_]+)\s*=\s*(.+?)\s*$")
_QUOTED_RE = re.compile(r"""^(['"])(.+)\1$""")


def is_project_dir(path: Path) -> bool:
    """True if `path` holds a Package.swift, *.xcodeproj or *.xcworkspace."""
    if (path / "Package.swift").is_file():
        return True
    return any(path.glob("*.xcodeproj")) or any(path.glob("*.xcworkspace"))


def find_project_root(start: str | Path | None = None, max_depth: int = MAX_DEPTH) -> Optional[Path]:
    """
    Search upwards from `start` (default: cwd) for an Xcode/Swift project.

    Returns:
        The first directory containing a project marker, or None if none is
        found before the filesystem root or `max_depth` levels up.
    """
    path = Path(start) if start is not None else Path.cwd()
    path = path.expanduser().resolve()

    for _ in range(max_depth):
        if path.parent == path:
            break
        if is_project_dir(path):
            return path
        path = path.parent
    return None


def parse_xcrc(text: str) -> Dict[str, str]:
    """
    Parse `key=value` settings.

    Several settings may share a line separated by `;`. Everything after
    `#` is a comment. One pair of matching quotes around a value is removed.
    Lines that do not look like settings are ignored.
    """
    settings: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        for part in line.split(";"):
            m = _SETTING_RE.match(part)
            if not m:
                continue
            key, value = m.group(1), m.group(2)
            q = _QUOTED_RE.match(value)
            if q:
                value = q.group(2)
            settings[key] = value.strip()
    return settings


def load_xcrc(project_root: str | Path | None) -> Dict[str, str]:
    """Read the first existing .xcrc under `project_root`; {} when none."""
    if project_root is None:
        return {}
    root = Path(project_root)
    for rel in XCRC_PATHS:
        candidate = root / rel
        if candidate.is_file():
            logger.debug("reading settings from %s", candidate)
            return parse_xcrc(candidate.read_text(encoding="utf-8", errors="replace"))
    return {}
