"""Validate and normalize AI-produced slide JSON.

Accepted slides always satisfy the table invariant (every row has exactly one
cell per header), so renderers and exporters never re-check it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from pydantic import ValidationError

try:
    from .errors import MalformedResponse, SlideValidationError, ValidationRepaired
    from .models import (
        CONTENT_TYPES,
        GENERATION_FAILED_TEXT,
        SINGLE_SLIDE_FAILED_TEXT,
        ParagraphItem,
        Slide,
        SlideStatus,
    )
    from .response_parser import extract_json
except ImportError:
    from errors import MalformedResponse, SlideValidationError, ValidationRepaired
    from models import (
        CONTENT_TYPES,
        GENERATION_FAILED_TEXT,
        SINGLE_SLIDE_FAILED_TEXT,
        ParagraphItem,
        Slide,
        SlideStatus,
    )
    from response_parser import extract_json

logger = logging.getLogger("medigen")


@dataclass
class ValidationResult:
    slides: List[Slide] = field(default_factory=list)
    repairs: List[ValidationRepaired] = field(default_factory=list)
    rejected: List[SlideValidationError] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def _as_text(value: Any, what: str) -> str:
    if isinstance(value, str):
        return value
    raise SlideValidationError(f"{what} must be a string, got {type(value).__name__}")


def _bold_list(value: Any) -> List[str] | None:
    if not isinstance(value, list):
        return None
    kept = [b for b in value if isinstance(b, str) and b]
    return kept or None


def _list_items(raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = raw.get("items")
    if not isinstance(items, list):
        raise SlideValidationError(f"{raw['type']}.items must be an array")
    out = []
    for i, it in enumerate(items):
        if isinstance(it, str):
            out.append({"text": it})
            continue
        if not isinstance(it, dict):
            raise SlideValidationError(f"{raw['type']}.items[{i}] must be an object")
        entry: Dict[str, Any] = {"text": _as_text(it.get("text"), f"{raw['type']}.items[{i}].text")}
        bold = _bold_list(it.get("bold"))
        if bold:
            entry["bold"] = bold
        out.append(entry)
    return out


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _table(
    raw: Dict[str, Any], slide_title: str, item_index: int, repairs: List[ValidationRepaired]
) -> Dict[str, Any]:
    headers = raw.get("headers")
    if not isinstance(headers, list):
        raise SlideValidationError("table.headers must be an array")
    headers = [_cell(h) for h in headers]
    width = len(headers)

    rows_raw = raw.get("rows") or []
    if not isinstance(rows_raw, list):
        raise SlideValidationError("table.rows must be an array")

    rows = []
    for r, row in enumerate(rows_raw):
        if isinstance(row, list):
            cells = row
        elif isinstance(row, dict) and isinstance(row.get("cells"), list):
            cells = row["cells"]
        else:
            raise SlideValidationError(f"table.rows[{r}].cells must be an array")
        cells = [_cell(c) for c in cells]
        if len(cells) != width:
            repairs.append(ValidationRepaired(slide_title, item_index, r, width, len(cells)))
            cells = (cells + [""] * width)[:width]
        rows.append({"cells": cells})
    return {"type": "table", "headers": headers, "rows": rows}


def normalize_content_item(
    raw: Any, slide_title: str = "", item_index: int = 0, repairs: List[ValidationRepaired] | None = None
) -> Dict[str, Any]:
    """Check one content item and return its normalized dict form."""
    if repairs is None:
        repairs = []
    if not isinstance(raw, dict):
        raise SlideValidationError("content item must be an object")
    kind = raw.get("type")
    if kind not in CONTENT_TYPES:
        raise SlideValidationError(f"unknown content type {kind!r}")

    if kind == "paragraph":
        out: Dict[str, Any] = {"type": kind, "text": _as_text(raw.get("text"), "paragraph.text")}
        bold = _bold_list(raw.get("bold"))
        if bold:
            out["bold"] = bold
        return out
    if kind == "note":
        return {"type": kind, "text": _as_text(raw.get("text"), "note.text")}
    if kind in ("bullet_list", "numbered_list"):
        return {"type": kind, "items": _list_items(raw)}
    return _table(raw, slide_title, item_index, repairs)


def validate_slide(raw: Any, index: int = 0) -> Tuple[Slide, List[ValidationRepaired]]:
    """Validate one slide-shaped object.

    Items with unknown or malformed shapes are dropped and logged; a slide
    without a string title or with a non-array content is rejected.
    """
    if not isinstance(raw, dict):
        raise SlideValidationError("slide must be an object", index)
    title = raw.get("title")
    if not isinstance(title, str):
        raise SlideValidationError("slide.title must be a string", index)
    content = raw.get("content")
    if content is None:
        content = []
    if not isinstance(content, list):
        raise SlideValidationError("slide.content must be an array", index)

    repairs: List[ValidationRepaired] = []
    items = []
    for i, item in enumerate(content):
        try:
            items.append(normalize_content_item(item, title, i, repairs))
        except SlideValidationError as exc:
            logger.warning("Slide %s (%r): dropped content item %s: %s", index, title, i, exc)

    try:
        slide = Slide.model_validate({"title": title, "content": items})
    except ValidationError as exc:
        raise SlideValidationError(f"slide failed schema check: {exc}", index) from exc

    if repairs:
        slide.repaired = True
        for rep in repairs:
            logger.warning("Repaired table row: %s", rep.describe())
    return slide, repairs


def validate_slides(data: Any) -> ValidationResult:
    """Validate a multi-slide document (array, single slide, or {"slides": [...]})."""
    if isinstance(data, dict):
        raw_slides = data["slides"] if isinstance(data.get("slides"), list) else [data]
    elif isinstance(data, list):
        raw_slides = data
    else:
        raise MalformedResponse(f"Slide document must be an array or object, got {type(data).__name__}.")

    result = ValidationResult()
    for i, raw in enumerate(raw_slides):
        try:
            slide, repairs = validate_slide(raw, i)
        except SlideValidationError as exc:
            logger.warning("Rejected slide %s: %s", i, exc)
            result.rejected.append(exc)
            continue
        result.slides.append(slide)
        result.repairs.extend(repairs)

    if raw_slides and not result.slides:
        raise MalformedResponse("No valid slides in response.")
    return result


def parse_slides(text: str) -> ValidationResult:
    return validate_slides(extract_json(text, "array", clean_escapes=True))


def parse_single_slide(text: str) -> Slide:
    slide, _repairs = validate_slide(extract_json(text, "object"))
    return slide


def error_slide(title: str, message: str = GENERATION_FAILED_TEXT) -> Slide:
    return Slide(title=title, content=[ParagraphItem(text=message)], status=SlideStatus.ERROR)


def fallback_slides(topics: Iterable[str], message: str = GENERATION_FAILED_TEXT) -> List[Slide]:
    return [error_slide(t, message) for t in topics]
