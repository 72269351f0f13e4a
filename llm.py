"""Thin client for the hosted text-completion API (Gemini REST)."""
from __future__ import annotations

import base64
import mimetypes
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import requests

try:
    from .errors import LLMError
except ImportError:
    from errors import LLMError

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
RETRY_STATUS = {408, 429, 500, 502, 503, 504}

Prompt = Union[str, Sequence[Union[str, Dict[str, Any]]]]


@dataclass
class LLMConfig:
    model: str = DEFAULT_MODEL
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0
    retries: int = 4
    backoff: float = 1.5
    temperature: float = 0.4
    max_workers: int = 4

    @classmethod
    def from_env(cls, **overrides) -> "LLMConfig":
        cfg = cls(
            model=os.environ.get("MEDIGEN_MODEL", DEFAULT_MODEL),
            api_key=os.environ.get("GEMINI_API_KEY", ""),
        )
        for k, v in overrides.items():
            if v is not None:
                setattr(cfg, k, v)
        return cfg


def image_part(src: str) -> Dict[str, Any]:
    """Inline-data part from a ``data:`` URI or a local image path."""
    if src.startswith("data:"):
        header, _, data = src.partition(",")
        mime = header[5:].split(";")[0] or "image/png"
        return {"inline_data": {"mime_type": mime, "data": data}}
    path = Path(src).expanduser()
    mime = mimetypes.guess_type(path.name)[0] or "image/png"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return {"inline_data": {"mime_type": mime, "data": data}}


def build_parts(prompt: Prompt, images: Sequence[str] | None = None) -> List[Dict[str, Any]]:
    items = [prompt] if isinstance(prompt, str) else list(prompt)
    parts: List[Dict[str, Any]] = []
    for it in items:
        parts.append({"text": it} if isinstance(it, str) else it)
    for img in images or []:
        parts.append(image_part(img))
    return parts


class GeminiClient:
    """Anything with ``invoke(prompt) -> str`` can stand in for this class."""

    def __init__(self, cfg: LLMConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.cfg.base_url.rstrip('/')}/models/{self.cfg.model}:generateContent"

    def invoke(self, prompt: Prompt, images: Sequence[str] | None = None) -> str:
        payload = {
            "contents": [{"role": "user", "parts": build_parts(prompt, images)}],
            "generationConfig": {"temperature": self.cfg.temperature},
        }
        r = self.session.post(
            self.url,
            params={"key": self.cfg.api_key},
            json=payload,
            timeout=self.cfg.timeout,
        )
        r.raise_for_status()
        data = r.json()
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise LLMError(f"Model returned no output ({reason}).")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)


def init_llm(cfg: LLMConfig) -> GeminiClient:
    if not cfg.api_key:
        raise LLMError("An API key is required. Set GEMINI_API_KEY or pass --api-key.")
    return GeminiClient(cfg)


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in RETRY_STATUS
    return isinstance(exc, (requests.ConnectionError, requests.Timeout, LLMError))


def safe_invoke(
    logger,
    llm,
    prompt: Prompt,
    retries: int = 4,
    images: Sequence[str] | None = None,
    backoff: float = 1.5,
    debug: bool = False,
) -> str:
    """Invoke ``llm`` with retries on transient errors; raise LLMError when exhausted."""
    last: Exception | None = None
    for attempt in range(1, max(1, retries) + 1):
        try:
            if images:
                out = llm.invoke(prompt, images=images)
            else:
                out = llm.invoke(prompt)
            text = out if isinstance(out, str) else getattr(out, "content", str(out))
            if debug:
                logger.debug("LLM response (%s chars): %s", len(text), text[:200])
            return text
        except Exception as exc:
            if not _retryable(exc):
                raise LLMError(f"LLM call failed: {exc}") from exc
            last = exc
            delay = backoff ** attempt + random.uniform(0, 0.5)
            logger.warning("LLM call failed (attempt %s/%s): %s; retrying in %.1fs", attempt, retries, exc, delay)
            if attempt < retries:
                time.sleep(delay)
    raise LLMError(f"LLM call failed after {retries} attempts: {last}")
