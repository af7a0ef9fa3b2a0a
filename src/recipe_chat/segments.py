"""Split assistant replies into display segments (heading/paragraph/list/divider)."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .types import ChatUsage


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class ListBlock:
    items: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Divider:
    pass


MessageSegment = Union[Heading, Paragraph, ListBlock, Divider]

_LINE_BREAK = re.compile(r"\r?\n")
_HEADING = re.compile(r"^(#{1,4})\s+(.*)$")
# Ordered and unordered markers end up in the same list.
_BULLET = re.compile(r"^[-*]\s+")
_NUMBERED = re.compile(r"^\d+\.\s+")

DIVIDER_WIDTH = 40


def segment(content: str) -> List[MessageSegment]:
    """Turn raw reply text into an ordered list of segments.

    Single pass over the lines; consecutive list lines are buffered and
    emitted as one :class:`ListBlock` when anything else (or the end of
    input) is reached. Never raises.
    """
    segments: List[MessageSegment] = []
    pending: List[str] = []

    def flush() -> None:
        if pending:
            segments.append(ListBlock(items=list(pending)))
            pending.clear()

    for raw in _LINE_BREAK.split(content or ""):
        line = raw.strip()
        if not line:
            flush()
            continue
        if line == "---":
            flush()
            segments.append(Divider())
            continue
        m = _HEADING.match(line)
        if m:
            flush()
            segments.append(Heading(level=len(m.group(1)), text=m.group(2)))
            continue
        for marker in (_BULLET, _NUMBERED):
            if marker.match(line):
                pending.append(marker.sub("", line, count=1))
                break
        else:
            flush()
            segments.append(Paragraph(text=line))

    flush()
    return segments


# -----------------------------
# Terminal rendering
# -----------------------------
def render_segments(segments: List[MessageSegment]) -> List[str]:
    """Render segments to plain terminal lines."""
    lines: List[str] = []
    for seg in segments:
        if isinstance(seg, Heading):
            lines.append(seg.text.upper() if seg.level == 1 else seg.text.title())
        elif isinstance(seg, Paragraph):
            lines.append(seg.text)
        elif isinstance(seg, ListBlock):
            lines.extend(f"  • {item}" for item in seg.items)
        elif isinstance(seg, Divider):
            lines.append("─" * DIVIDER_WIDTH)
    return lines


def format_usage(usage: Optional[ChatUsage]) -> str:
    if usage is None:
        return ""
    return f"Tokens · in {usage.inputTokens or 0} · out {usage.outputTokens or 0}"
