"""Markers: node-bound annotations recording resolution failures."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from constants import FailureKind

# Rendered form inside an XML comment: <!--~~(message)~~>-->
_MARKER_TEXT = re.compile(r"^~~\((?P<message>.*)\)~~>$", re.DOTALL)


@dataclass(frozen=True)
class Marker:
    """A rendered failure bound to exactly one document node.

    ``kind`` is None for markers read back from text, where only the message
    survives.
    """

    kind: Optional[FailureKind]
    message: str
    target: str
    detail: Optional[str] = None

    def comment_text(self) -> str:
        return render_comment_text(self.message)


def render_comment_text(message: str) -> str:
    """Comment body for ``message``; the XML writer adds the ``<!--``/``-->`` delimiters."""
    # "--" is not allowed inside an XML comment
    return "~~(" + message.replace("--", "- -") + ")~~>"


def parse_comment_text(text: Optional[str]) -> Optional[str]:
    """Return the marker message when ``text`` is a marker comment body."""
    if not text:
        return None
    match = _MARKER_TEXT.match(text)
    if match is None:
        return None
    return match.group("message")
