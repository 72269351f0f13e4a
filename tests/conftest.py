"""
Pytest configuration and shared fixtures
"""

import json
import sys
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Union

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from models import Slide  # noqa: E402


Reply = Union[str, Callable[[str], str], Exception]


class FakeLLM:
    """Scripted stand-in for the HTTP client: replies are consumed in order."""

    def __init__(self, replies: Optional[List[Reply]] = None):
        self.replies = list(replies or [])
        self.prompts: List[str] = []
        self.images: List[Optional[list]] = []
        self._lock = threading.Lock()

    def invoke(self, prompt, images=None):
        with self._lock:
            self.prompts.append(prompt)
            self.images.append(images)
            reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def case_home(temp_dir: Path, monkeypatch) -> Path:
    """Point the case store at a temporary directory."""
    home = temp_dir / "home"
    monkeypatch.setenv("MEDIGEN_HOME", str(home))
    return home


@pytest.fixture
def sample_slide_dicts() -> List[Dict]:
    return [
        {
            "title": "Sepsis",
            "content": [
                {"type": "paragraph", "text": "Sepsis is life-threatening organ dysfunction.", "bold": ["organ dysfunction"]},
                {
                    "type": "bullet_list",
                    "items": [
                        {"text": "Lactate above 2 mmol/L", "bold": ["Lactate"]},
                        {"text": "MAP below 65 mmHg"},
                    ],
                },
                {
                    "type": "table",
                    "headers": ["Marker", "Threshold"],
                    "rows": [{"cells": ["Lactate", "2 mmol/L"]}, {"cells": ["MAP", "65 mmHg"]}],
                },
            ],
        },
        {
            "title": "Management",
            "content": [
                {"type": "numbered_list", "items": [{"text": "Cultures"}, {"text": "Antibiotics within 1 hour"}]},
                {"type": "note", "text": "Note: reassess volume status often."},
            ],
        },
    ]


@pytest.fixture
def sample_slides(sample_slide_dicts) -> List[Slide]:
    return [Slide.model_validate(d) for d in sample_slide_dicts]


@pytest.fixture
def slides_json(sample_slide_dicts) -> str:
    return "Here is the deck:\n```json\n" + json.dumps(sample_slide_dicts) + "\n```"


@pytest.fixture
def fake_llm_factory() -> Callable[..., FakeLLM]:
    return FakeLLM
