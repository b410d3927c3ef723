"""Incremental line assembly for streamed process output."""

from __future__ import annotations

import codecs
from typing import List, Optional


def clean_line(line: str) -> str:
    """Strip trailing carriage returns (CRLF output, progress redraws)."""
    return line.rstrip("\r")


class LineAssembler:
    """
    Turns arbitrary byte reads into complete lines.

    A trailing partial line is held back until the next feed() completes it
    or flush() is called at end of stream.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._partial = ""

    def feed(self, data: bytes) -> List[str]:
        text = self._partial + self._decoder.decode(data)
        parts = text.split("\n")
        self._partial = parts.pop()
        return [clean_line(p) for p in parts]

    def flush(self) -> List[str]:
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        if not tail:
            return []
        return [clean_line(tail)]

    @property
    def pending(self) -> Optional[str]:
        return self._partial or None
