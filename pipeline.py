"""Session flows: topic deck, clinical question deck, diagnosis, and case editing."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

try:
    from .ai_service import CASE_SUMMARY_TOPIC, AiService
    from .bold_spans import Span, note_body, render_spans
    from .deck_editor import DeckEditor
    from .errors import DeckEditError, ExportFailure, MedigenError
    from .memory_utils import get_case, save_case, update_case_output
    from .models import (
        BulletListItem,
        Case,
        Diagnosis,
        NoteItem,
        NumberedListItem,
        ParagraphItem,
        Slide,
        SlideStatus,
        StructuredQuestion,
        TableItem,
    )
    from .pipeline_render import Renderer
except ImportError:
    from ai_service import CASE_SUMMARY_TOPIC, AiService
    from bold_spans import Span, note_body, render_spans
    from deck_editor import DeckEditor
    from errors import DeckEditError, ExportFailure, MedigenError
    from memory_utils import get_case, save_case, update_case_output
    from models import (
        BulletListItem,
        Case,
        Diagnosis,
        NoteItem,
        NumberedListItem,
        ParagraphItem,
        Slide,
        SlideStatus,
        StructuredQuestion,
        TableItem,
    )
    from pipeline_render import Renderer

logger = logging.getLogger("medigen")

MODES = ("topic", "question", "diagnosis", "case")


@dataclass
class RunConfig:
    mode: str
    out_dir: Path
    topic: str = ""
    question: str = ""
    patient_data: str = ""
    images: List[str] = field(default_factory=list)
    case_id: str = ""
    export_formats: List[str] = field(default_factory=list)
    user_id: str = "local"
    approve: bool = True
    verbose: bool = False
    add_topics: List[str] = field(default_factory=list)
    suggest: bool = False
    delete_indices: List[int] = field(default_factory=list)
    move: Optional[Tuple[int, int]] = None
    refresh_indices: List[int] = field(default_factory=list)
    expand_indices: List[int] = field(default_factory=list)
    raw: bool = False


def rich_text(spans: Sequence[Span]) -> Text:
    out = Text()
    for span in spans:
        out.append(span.text, style="bold" if span.bold else None)
    return out


def item_renderable(item):
    if isinstance(item, ParagraphItem):
        return rich_text(render_spans(item.text, item.bold))
    if isinstance(item, NoteItem):
        return Text("Note: " + note_body(item.text), style="italic")
    if isinstance(item, (BulletListItem, NumberedListItem)):
        lines = []
        for n, entry in enumerate(item.items, 1):
            prefix = "  • " if isinstance(item, BulletListItem) else f"  {n}. "
            lines.append(rich_text([Span(prefix, False)] + render_spans(entry.text, entry.bold)))
        return Group(*lines)
    if isinstance(item, TableItem):
        table = Table(show_lines=False, header_style="bold")
        for h in item.headers:
            table.add_column(Text(h))
        for r, row in enumerate(item.rows):
            table.add_row(*[rich_text(render_spans(c)) for c in row.cells], style="dim" if r % 2 else None)
        return table
    return Text(str(item))


def slide_panel(index: int, slide: Slide) -> Panel:
    body = Group(*[item_renderable(it) for it in slide.content]) if slide.content else Text("(empty)", style="dim")
    title = Text(f"{index:02d}. {slide.title}")
    if slide.status != SlideStatus.POPULATED:
        title.append(f" [{slide.status.value}]", style="bold red")
    return Panel(body, title=title, title_align="left", border_style="blue")


class Pipeline:
    def __init__(
        self,
        cfg: RunConfig,
        ai: AiService,
        renderer: Optional[Renderer] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.cfg = cfg
        self.ai = ai
        self.renderer = renderer or Renderer()
        self.console = console or Console()

    # -- persistence ---------------------------------------------------

    def _new_case(self, kind: str, title: str, input_data: Dict[str, Any]) -> Case:
        case = Case(user_id=self.cfg.user_id, type=kind, title=title, input_data=input_data)
        save_case(case)
        logger.info("Saved case %s", case.id)
        return case

    @staticmethod
    def _persister(case_id: str):
        def _on_update(snapshot: Dict[str, Any]) -> None:
            update_case_output(case_id, **snapshot)

        return _on_update

    # -- display -------------------------------------------------------

    def print_outline(self, titles: Sequence[str]) -> None:
        table = Table(title="Outline", show_header=False)
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Title")
        for i, t in enumerate(titles):
            table.add_row(str(i), Text(t))
        self.console.print(table)

    def preview(self, slides: Sequence[Slide]) -> None:
        for i, slide in enumerate(slides):
            self.console.print(slide_panel(i, slide))

    def print_diagnoses(self, diagnoses: Sequence[Diagnosis]) -> None:
        table = Table(title="Provisional diagnoses", show_lines=True)
        table.add_column("Diagnosis", style="bold")
        table.add_column("Confidence", justify="right")
        table.add_column("Reasoning")
        table.add_column("Missing information")
        for d in diagnoses:
            missing = d.missing_information.information + [f"test: {t}" for t in d.missing_information.tests]
            table.add_row(Text(d.diagnosis), f"{d.confidence_level:.0%}", Text(d.reasoning), Text("\n".join(missing)))
        self.console.print(table)

    # -- outline approval ----------------------------------------------

    @staticmethod
    def apply_outline_feedback(titles: Sequence[str], feedback: str) -> List[str]:
        """Apply comma-separated edits: ``-N`` drops title N, ``+Title`` appends a custom title."""
        drop = set()
        extra: List[str] = []
        for token in feedback.split(","):
            token = token.strip()
            if token.startswith("-") and token[1:].strip().isdigit():
                drop.add(int(token[1:]))
            elif token.startswith("+") and token[1:].strip():
                extra.append(token[1:].strip())
            elif token:
                logger.warning("Ignoring outline edit %r (use -N or +Title).", token)
        kept = [t for i, t in enumerate(titles) if i not in drop]
        return list(dict.fromkeys(kept + extra))

    def approve_outline(self, titles: List[str], max_rounds: int = 3) -> List[str]:
        if not self.cfg.approve:
            return titles
        for _round in range(max_rounds):
            self.print_outline(titles)
            ans = input("\nApprove outline? Type 'y' to approve, or edits like '-3, +Sepsis in pregnancy': ").strip()
            if ans.lower() in ["y", "yes"]:
                print("Approved.")
                return titles
            revised = self.apply_outline_feedback(titles, ans)
            if not revised:
                print("An outline needs at least one title; keeping the previous one.")
                continue
            titles = revised
        print("Max rounds reached; proceeding with latest outline.")
        return titles

    # -- flows ---------------------------------------------------------

    def _build_deck(self, case: Case, slides: List[Slide], topic: str, outline: Sequence[str], question: str = "") -> DeckEditor:
        editor = DeckEditor(
            slides,
            ai=self.ai,
            topic=topic,
            outline=outline,
            question_context=question,
            on_update=self._persister(case.id),
            max_workers=self.ai.cfg.max_workers,
            progress=True,
        )
        update_case_output(case.id, **editor.snapshot())
        return editor

    def run_topic(self) -> Tuple[Case, DeckEditor]:
        topic = self.cfg.topic.strip()
        if not topic:
            raise MedigenError("A topic is required.")
        case = self._new_case("content-generator", topic, {"topic": topic})

        logger.info("Generating outline for %r...", topic)
        outline = self.ai.generate_presentation_outline(topic=topic)
        update_case_output(case.id, outline=outline)
        selected = self.approve_outline(list(outline))
        update_case_output(case.id, selectedTopics=selected)

        logger.info("Generating content for %s slide(s)...", len(selected))
        slides = self.ai.generate_slide_content(topic, selected)
        return case, self._build_deck(case, slides, topic, outline)

    def run_question(self) -> Tuple[Case, DeckEditor]:
        question = self.cfg.question.strip()
        if not question and not self.cfg.images:
            raise MedigenError("A question or at least one image is required.")
        case = self._new_case("content-generator", question[:80] or "Clinical question", {
            "question": question,
            "images": list(self.cfg.images),
        })

        logger.info("Answering clinical question...")
        with ThreadPoolExecutor(max_workers=2) as pool:
            fut_answer = pool.submit(self.ai.answer_clinical_question, question, self.cfg.images)
            fut_summary = pool.submit(self.ai.summarize_question, question, self.cfg.images)
            answer = fut_answer.result()
            summary = fut_summary.result()
        case.title = summary or answer.topic
        save_case(case)
        structured = StructuredQuestion(summary=summary, images=list(self.cfg.images))
        update_case_output(
            case.id,
            answer=answer.answer,
            reasoning=answer.reasoning,
            topic=answer.topic,
            structuredQuestion=structured.model_dump(),
        )
        self.console.print(Panel(Text(answer.answer), title=Text(answer.topic), border_style="green"))

        outline = self.ai.generate_presentation_outline(
            question=question, answer=answer.answer, reasoning=answer.reasoning
        )
        if not outline or outline[0] != CASE_SUMMARY_TOPIC:
            outline = [CASE_SUMMARY_TOPIC] + [t for t in outline if t != CASE_SUMMARY_TOPIC]
        update_case_output(case.id, outline=outline)
        selected = self.approve_outline(list(outline))
        update_case_output(case.id, selectedTopics=selected)

        logger.info("Generating content for %s slide(s)...", len(selected))
        slides = self.ai.generate_slide_content(
            answer.topic, selected, question=question, answer=answer.answer, reasoning=answer.reasoning
        )
        return case, self._build_deck(case, slides, answer.topic, outline, question=question)

    def run_diagnosis(self) -> Tuple[Case, List[Diagnosis]]:
        data = self.cfg.patient_data.strip()
        if not data and not self.cfg.images:
            raise MedigenError("Patient data or at least one image is required.")
        case = self._new_case("diagnosis", data[:80] or "Image analysis", {
            "patientData": data,
            "images": list(self.cfg.images),
        })
        logger.info("Requesting provisional diagnoses...")
        diagnoses = self.ai.generate_diagnosis(data, self.cfg.images)
        update_case_output(case.id, diagnoses=[d.model_dump(by_alias=True) for d in diagnoses])
        self.print_diagnoses(diagnoses)
        return case, diagnoses

    def open_case(self, case_id: str) -> Tuple[Case, DeckEditor]:
        case = get_case(case_id)
        if case is None:
            raise MedigenError(f"Case not found: {case_id}")
        if case.type != "content-generator":
            raise MedigenError(f"Case {case_id} is a {case.type} case and has no slides.")
        out = case.output_data
        editor = DeckEditor(
            case.slides(),
            ai=self.ai,
            topic=out.get("topic") or case.input_data.get("topic", ""),
            used_topics=out.get("usedTopics") or [],
            suggested_topics=out.get("suggestedTopics") or [],
            outline=out.get("outline") or [],
            question_context=case.input_data.get("question", ""),
            on_update=self._persister(case.id),
            max_workers=self.ai.cfg.max_workers,
            progress=True,
        )
        return case, editor

    def edit_case(self) -> Tuple[Case, DeckEditor]:
        """Apply the configured edits in order: move, delete, refresh, expand, suggest, add."""
        cfg = self.cfg
        case, editor = self.open_case(cfg.case_id)
        if cfg.move is not None:
            editor.reorder(*cfg.move)
            logger.info("Moved slide %s to %s.", *cfg.move)
        if cfg.delete_indices:
            editor.remove_selected(cfg.delete_indices)
        if cfg.refresh_indices:
            self._try_edit(editor.replace_content, cfg.refresh_indices)
        if cfg.expand_indices:
            self._try_edit(editor.expand_selected, cfg.expand_indices)
        if cfg.suggest:
            editor.fetch_topic_suggestions()
            available = editor.available_topics()
            if available:
                self.console.print(Text("Suggested topics: " + ", ".join(available)))
            else:
                self.console.print("No new topic suggestions.")
        if cfg.add_topics:
            outcome = editor.add_by_topics(cfg.add_topics)
            for slot, message in sorted(outcome.failures.items()):
                logger.error("Slide %s (%s) failed: %s", slot, editor.titles[slot], message)
        return case, editor

    @staticmethod
    def _try_edit(op, indices: Sequence[int]) -> bool:
        try:
            op(indices)
            return True
        except DeckEditError as exc:
            logger.error("%s", exc)
            return False

    def export(self, editor: DeckEditor, topic: str) -> List[Path]:
        paths = []
        for fmt in self.cfg.export_formats:
            try:
                paths.append(self.renderer.export(editor.slides, fmt, self.cfg.out_dir, topic))
            except ExportFailure as exc:
                logger.error("%s", exc)
        return paths

    def run(self) -> Dict[str, Any]:
        mode = self.cfg.mode
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        if mode == "diagnosis":
            case, diagnoses = self.run_diagnosis()
            return {"case_id": case.id, "diagnoses": diagnoses, "exports": []}

        if mode == "topic":
            case, editor = self.run_topic()
        elif mode == "question":
            case, editor = self.run_question()
        else:
            case, editor = self.edit_case()

        self.preview(editor.slides)
        if self.cfg.raw:
            print(editor.to_json())
        topic = editor.topic or case.title
        exports = self.export(editor, topic)
        return {"case_id": case.id, "slides": editor.slides, "exports": exports}
