"""Local case store: one JSON document per case under ``$MEDIGEN_HOME/cases``."""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

try:
    from .models import Case
except ImportError:
    from models import Case

logger = logging.getLogger("medigen")


def _storage_dir() -> Path:
    root = Path(os.environ.get("MEDIGEN_HOME") or (Path.home() / ".medigen")).expanduser()
    root.mkdir(parents=True, exist_ok=True)
    return root


def cases_dir() -> Path:
    path = _storage_dir() / "cases"
    path.mkdir(parents=True, exist_ok=True)
    return path


def case_path(case_id: str) -> Path:
    return cases_dir() / f"{case_id}.json"


def _write(case: Case) -> None:
    data = case.model_dump(by_alias=True)
    case_path(case.id).write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _read(path: Path) -> Optional[Case]:
    try:
        return Case.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning("Skipping unreadable case file %s: %s", path, exc)
        return None


def save_case(case: Case) -> str:
    """Write ``case``, assigning an id and ``created_at`` when missing. Returns the id."""
    if not case.id:
        case.id = uuid.uuid4().hex
    if not case.created_at:
        case.created_at = now_ms()
    _write(case)
    return case.id


def get_case(case_id: str) -> Optional[Case]:
    path = case_path(case_id)
    if not path.exists():
        return None
    return _read(path)


def list_cases(user_id: Optional[str] = None) -> List[Case]:
    cases = []
    for path in sorted(cases_dir().glob("*.json")):
        case = _read(path)
        if case is None:
            continue
        if user_id is not None and case.user_id != user_id:
            continue
        cases.append(case)
    cases.sort(key=lambda c: c.created_at, reverse=True)
    return cases


def delete_case(case_id: str) -> bool:
    path = case_path(case_id)
    if not path.exists():
        return False
    path.unlink()
    return True


def update_case_output(case_id: str, **fields: Any) -> Optional[Case]:
    """Merge ``fields`` into the case's output data; the latest values win."""
    case = get_case(case_id)
    if case is None:
        logger.warning("Case %s not found; output not saved.", case_id)
        return None
    case.output_data.update(fields)
    _write(case)
    return case


def now_ms() -> int:
    return int(time.time() * 1000)
