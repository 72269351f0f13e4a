"""Split text into plain/bold runs from a list of literal substrings.

The same decomposition feeds the terminal preview and all three exporters,
so bold formatting looks identical everywhere.
"""
from __future__ import annotations

import re
from typing import Iterable, List, NamedTuple, Optional

_NOTE_PREFIX_RE = re.compile(r"^Note:\s*", re.IGNORECASE)


class Span(NamedTuple):
    text: str
    bold: bool


def bold_pattern(bold: Iterable[str]) -> Optional[re.Pattern]:
    wanted = [b for b in bold if b]
    if not wanted:
        return None
    return re.compile("(" + "|".join(re.escape(b) for b in wanted) + ")")


def render_spans(text: str, bold: Optional[List[str]] = None) -> List[Span]:
    """Return the runs of ``text`` with ``bold`` substrings marked.

    Alternation follows the order of ``bold``, so callers should list longer
    substrings first. Entries not found in ``text`` are ignored.
    """
    if not text:
        return []
    marked = [b for b in (bold or []) if isinstance(b, str) and b]
    pattern = bold_pattern(marked)
    if pattern is None:
        return [Span(text, False)]
    wanted = set(marked)
    return [Span(part, part in wanted) for part in pattern.split(text) if part]


def spans_text(spans: Iterable[Span]) -> str:
    return "".join(s.text for s in spans)


def note_body(text: str) -> str:
    """Drop a leading 'Note:' so renderers can add their own prefix."""
    return _NOTE_PREFIX_RE.sub("", text or "")
