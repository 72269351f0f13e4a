"""In-memory slide deck for one editing session.

Every mutation builds the new slide list first and swaps it in at the end, so
a failed operation leaves the previous deck untouched. Slides are correlated
by ``slide_id`` (titles are display-only and may repeat); selection is kept
as a set of ids, which makes index shifting after deletes automatic.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from tqdm import tqdm

try:
    from .errors import DeckEditError, LLMError, MalformedResponse
    from .models import Slide, SlideStatus
    from .slide_schema import GENERATION_FAILED_TEXT, error_slide
except ImportError:
    from errors import DeckEditError, LLMError, MalformedResponse
    from models import Slide, SlideStatus
    from slide_schema import GENERATION_FAILED_TEXT, error_slide

logger = logging.getLogger("medigen")
TQDM_NCOLS = 100


@dataclass
class BatchOutcome:
    """Result of ``add_by_topics``: slot indices added and the ones that failed."""

    added: List[int] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[int]:
        return [i for i in self.added if i not in self.failures]

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures) and len(self.failures) < len(self.added)


class DeckEditor:
    def __init__(
        self,
        slides: Optional[Iterable[Slide]] = None,
        *,
        ai=None,
        topic: str = "",
        used_topics: Optional[Iterable[str]] = None,
        suggested_topics: Optional[Iterable[str]] = None,
        outline: Optional[Sequence[str]] = None,
        question_context: str = "",
        on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
        max_workers: int = 4,
        progress: bool = False,
    ) -> None:
        self.ai = ai
        self.topic = topic
        self.outline = list(outline or [])
        self.question_context = question_context
        self.on_update = on_update
        self.max_workers = max(1, max_workers)
        self.progress = progress
        self.used_topics: Set[str] = set(used_topics or [])
        self.suggested_topics: List[str] = list(dict.fromkeys(suggested_topics or []))
        self._slides: List[Slide] = [s.clone() for s in slides or []]
        self._selected: Set[str] = set()
        self.used_topics |= {s.title for s in self._slides}

    # -- read access ---------------------------------------------------

    def __len__(self) -> int:
        return len(self._slides)

    @property
    def slides(self) -> List[Slide]:
        return [s.clone() for s in self._slides]

    @property
    def titles(self) -> List[str]:
        return [s.title for s in self._slides]

    def index_of(self, slide_id: str) -> int:
        for i, s in enumerate(self._slides):
            if s.slide_id == slide_id:
                return i
        raise DeckEditError(f"No slide with id {slide_id!r}")

    @property
    def selected_indices(self) -> List[int]:
        return [i for i, s in enumerate(self._slides) if s.slide_id in self._selected]

    @property
    def selected_ids(self) -> List[str]:
        return [s.slide_id for s in self._slides if s.slide_id in self._selected]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "slides": [s.to_payload() for s in self._slides],
            "usedTopics": sorted(self.used_topics),
            "suggestedTopics": list(self.suggested_topics),
        }

    def to_json(self) -> str:
        return json.dumps({"slides": [s.to_payload() for s in self._slides]}, indent=2, ensure_ascii=False)

    # -- bookkeeping ---------------------------------------------------

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._slides):
            raise IndexError(f"slide index {index} out of range (0..{len(self._slides) - 1})")

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.snapshot())

    def _commit(self, slides: List[Slide], extra_topics: Iterable[str] = ()) -> None:
        self._slides = slides
        live = {s.slide_id for s in slides}
        self._selected &= live
        self.used_topics |= {s.title for s in slides}
        self.used_topics |= set(extra_topics)
        self._notify()

    # -- selection -----------------------------------------------------

    def select(self, index: int, checked: bool = True) -> None:
        self._check_index(index)
        sid = self._slides[index].slide_id
        if checked:
            self._selected.add(sid)
        else:
            self._selected.discard(sid)

    def select_all(self, checked: bool = True) -> None:
        self._selected = {s.slide_id for s in self._slides} if checked else set()

    def clear_selection(self) -> None:
        self._selected.clear()

    # -- structural edits ----------------------------------------------

    def reorder(self, from_index: int, to_index: int) -> None:
        self._check_index(from_index)
        self._check_index(to_index)
        if from_index == to_index:
            return
        slides = list(self._slides)
        moved = slides.pop(from_index)
        slides.insert(to_index, moved)
        self._commit(slides)

    def reorder_by_id(self, active_id: str, over_id: str) -> None:
        """Drag-and-drop form of :meth:`reorder` keyed by slide ids."""
        if active_id == over_id:
            return
        self.reorder(self.index_of(active_id), self.index_of(over_id))

    def remove(self, index: int) -> Slide:
        self._check_index(index)
        removed = self._slides[index]
        self._selected.discard(removed.slide_id)
        self._commit(self._slides[:index] + self._slides[index + 1 :])
        return removed.clone()

    def remove_selected(self, indices: Optional[Iterable[int]] = None) -> int:
        doomed = set(self.selected_indices if indices is None else indices)
        for i in doomed:
            self._check_index(i)
        if not doomed:
            return 0
        survivors = [s for i, s in enumerate(self._slides) if i not in doomed]
        self._commit(survivors)
        logger.info("Removed %s slide(s).", len(doomed))
        return len(doomed)

    # -- AI-backed edits -----------------------------------------------

    def _require_ai(self) -> None:
        if self.ai is None:
            raise DeckEditError("No AI collaborator configured for this deck.")

    def _apply_generated(self, slot: int, placeholder_id: str, slide: Slide) -> None:
        if slot < len(self._slides) and self._slides[slot].slide_id == placeholder_id:
            pos = slot
        else:
            pos = self.index_of(placeholder_id)
        slide = slide.clone()
        slide.slide_id = placeholder_id
        if slide.status == SlideStatus.PLACEHOLDER:
            slide.status = SlideStatus.POPULATED
        slides = list(self._slides)
        slides[pos] = slide
        self._commit(slides)

    def add_by_topics(self, topics: Sequence[str]) -> BatchOutcome:
        """Append one placeholder per topic, then fill each slot as its request completes.

        Requests run concurrently and may finish in any order; each result is
        applied to its own slot. A failed topic leaves an error placeholder
        while the rest of the batch proceeds.
        """
        self._require_ai()
        wanted = [t.strip() for t in topics if t and t.strip()]
        if not wanted:
            raise DeckEditError("No topics selected.")

        start = len(self._slides)
        placeholders = [Slide.placeholder(t) for t in wanted]
        self._commit(self._slides + placeholders, extra_topics=wanted)
        outcome = BatchOutcome(added=list(range(start, start + len(wanted))))

        workers = min(self.max_workers, len(wanted))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self.ai.generate_single_slide, t): (start + i, placeholders[i].slide_id, t)
                for i, t in enumerate(wanted)
            }
            for fut in tqdm(
                as_completed(futures),
                total=len(futures),
                desc="Slides",
                unit="slide",
                ncols=TQDM_NCOLS,
                disable=not self.progress,
            ):
                slot, placeholder_id, topic = futures[fut]
                try:
                    slide = fut.result()
                except Exception as exc:
                    logger.error("Slide generation failed for %r: %s", topic, exc)
                    slide = error_slide(topic, GENERATION_FAILED_TEXT)
                    outcome.failures[slot] = str(exc) or type(exc).__name__
                else:
                    if slide.status == SlideStatus.ERROR:
                        outcome.failures[slot] = "generation failed"
                self._apply_generated(slot, placeholder_id, slide)

        if outcome.failures:
            logger.warning("%s of %s new slide(s) failed to generate.", len(outcome.failures), len(wanted))
        else:
            logger.info("Added %s new slide(s).", len(wanted))
        return outcome

    def _modify(self, action: str, indices: Optional[Iterable[int]]) -> None:
        self._require_ai()
        chosen = sorted(set(self.selected_indices if indices is None else indices))
        if not chosen:
            raise DeckEditError("No slides selected.")
        for i in chosen:
            self._check_index(i)

        current = self._slides
        try:
            result = self.ai.modify_slides([s.clone() for s in current], chosen, action)
        except (MalformedResponse, LLMError) as exc:
            raise DeckEditError(f"Failed to modify slides ({action}): {exc}") from exc
        if not result:
            raise DeckEditError(f"Failed to modify slides ({action}): empty response")

        updated = []
        for i, slide in enumerate(result):
            slide = slide.clone()
            if i < len(current) and current[i].title == slide.title:
                slide.slide_id = current[i].slide_id
            updated.append(slide)
        self._selected.clear()
        self._commit(updated)
        logger.info("Applied %s to %s slide(s).", action, len(chosen))

    def replace_content(self, indices: Optional[Iterable[int]] = None) -> None:
        self._modify("replace_content", indices)

    def expand_selected(self, indices: Optional[Iterable[int]] = None) -> None:
        self._modify("expand_selected", indices)

    def expand_content(self, indices: Optional[Iterable[int]] = None) -> None:
        self._modify("expand_content", indices)

    # -- topics --------------------------------------------------------

    def fetch_topic_suggestions(self) -> List[str]:
        self._require_ai()
        existing = self.outline + self.suggested_topics
        incoming = self.ai.suggest_topics(existing, topic=self.topic, question=self.question_context)
        self.suggested_topics = list(dict.fromkeys(self.suggested_topics + list(incoming)))
        self._notify()
        return list(self.suggested_topics)

    def is_topic_used(self, topic: str) -> bool:
        return topic in self.used_topics or topic in self.titles

    def available_topics(self) -> List[str]:
        return [t for t in self.suggested_topics if not self.is_topic_used(t)]
