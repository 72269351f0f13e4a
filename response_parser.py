"""Pull one JSON value out of free-form LLM text.

Every AI call site goes through :func:`extract_json`, so leading or trailing
prose, code fences and similar noise are tolerated the same way everywhere.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

try:
    from .errors import MalformedResponse
except ImportError:
    from errors import MalformedResponse

logger = logging.getLogger("medigen")

_BRACKETS = {"array": ("[", "]"), "object": ("{", "}")}


def strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        t = re.sub(r"^```[a-zA-Z]*\n?", "", t)
        t = re.sub(r"\n?```$", "", t).strip()
    return t


def find_json_span(text: str, kind: str = "array") -> Optional[str]:
    """First opening bracket to last closing bracket, or None."""
    opening, closing = _BRACKETS[kind]
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str, kind: str = "array", clean_escapes: bool = False) -> Any:
    if kind not in _BRACKETS:
        raise ValueError(f"kind must be 'array' or 'object', got {kind!r}")
    raw = text or ""
    js = find_json_span(strip_code_fences(raw), kind)
    if js is None:
        raise MalformedResponse(f"No JSON {kind} found in response.", raw)
    if clean_escapes:
        # literal \n and \t escapes inside generated strings become spaces
        js = js.replace("\\n", " ").replace("\\t", " ")
    try:
        value = json.loads(js)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"JSON {kind} could not be parsed: {exc}", raw) from exc
    expected = list if kind == "array" else dict
    if not isinstance(value, expected):
        raise MalformedResponse(f"Expected a JSON {kind}, got {type(value).__name__}.", raw)
    return value


def extract_json_object(text: str) -> dict:
    return extract_json(text, "object")


def log_malformed(label: str, exc: MalformedResponse) -> None:
    logger.error("%s: %s", label, exc)
    logger.error("RAW HEAD: %s", exc.head)
    logger.error("RAW TAIL: %s", exc.tail)
