"""Prompted operations against the AI collaborator.

Each method sends one prompt, pulls the JSON out of the reply with
``response_parser`` and falls back to a fixed value when the reply is
malformed. ``modify_slides`` is the exception: it raises, because the caller
must leave the deck untouched.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

try:
    from .errors import MalformedResponse, SlideValidationError
    from .llm import LLMConfig, init_llm, safe_invoke
    from .models import ClinicalAnswer, Diagnosis, Slide
    from .response_parser import extract_json, log_malformed
    from .slide_schema import (
        GENERATION_FAILED_TEXT,
        SINGLE_SLIDE_FAILED_TEXT,
        error_slide,
        fallback_slides,
        parse_single_slide,
        parse_slides,
    )
except ImportError:
    from errors import MalformedResponse, SlideValidationError
    from llm import LLMConfig, init_llm, safe_invoke
    from models import ClinicalAnswer, Diagnosis, Slide
    from response_parser import extract_json, log_malformed
    from slide_schema import (
        GENERATION_FAILED_TEXT,
        SINGLE_SLIDE_FAILED_TEXT,
        error_slide,
        fallback_slides,
        parse_single_slide,
        parse_slides,
    )

logger = logging.getLogger("medigen")

CASE_SUMMARY_TOPIC = "Clinical Case Summary and Key Questions"
MODIFY_ACTIONS = ("replace_content", "expand_selected", "expand_content")
DEFAULT_OUTLINE = [
    "Introduction",
    "Pathophysiology",
    "Clinical Features",
    "Diagnosis",
    "Management",
    "Case Studies",
    "Conclusion",
]

CONTENT_SCHEMA = """
Supported "type" values for content items:
- "paragraph": {"type": "paragraph", "text": "...", "bold": ["..."]}  (use sparingly)
- "bullet_list": {"type": "bullet_list", "items": [{"text": "...", "bold": ["..."]}]}
- "numbered_list": {"type": "numbered_list", "items": [{"text": "...", "bold": ["..."]}]}
- "note": {"type": "note", "text": "..."}
- "table": {"type": "table", "headers": ["...", "..."], "rows": [{"cells": ["...", "..."]}]}

Rules:
- Every content item MUST have a "type" field.
- For "paragraph" and list "items", list substrings of "text" to emphasize in "bold".
- Do NOT use markdown such as **text** inside any text field.
- Every table row MUST have exactly as many cells as the table has headers.
  Check every table before answering and fix any row that does not.
""".strip()


class AiService:
    """AI collaborator bound to one explicit :class:`LLMConfig`."""

    def __init__(self, cfg: LLMConfig, llm=None) -> None:
        self.cfg = cfg
        self.llm = llm if llm is not None else init_llm(cfg)

    def _ask(self, prompt: str, images: Sequence[str] | None = None) -> str:
        return safe_invoke(logger, self.llm, prompt, retries=self.cfg.retries, images=images, backoff=self.cfg.backoff)

    def generate_diagnosis(self, patient_data: str = "", images: Sequence[str] | None = None) -> List[Diagnosis]:
        prompt = """
You are a medical AI assistant. Analyze the patient data below and give provisional
diagnoses with a confidence level and reasoning.

Return ONLY a JSON array of objects with keys:
- "diagnosis": string
- "confidenceLevel": number between 0 and 1 (e.g. 0.85)
- "reasoning": string
- "missingInformation": {"information": ["..."], "tests": ["..."]}
""".strip()
        if patient_data:
            prompt += f"\n\nPatient Data: {patient_data}"
        raw = self._ask(prompt, images)
        try:
            items = extract_json(raw, "array")
            diagnoses = [Diagnosis.model_validate(d) for d in items if isinstance(d, dict)]
            if diagnoses:
                return sorted(diagnoses, key=lambda d: d.confidence_level, reverse=True)
            raise MalformedResponse("Diagnosis array was empty.", raw)
        except MalformedResponse as exc:
            log_malformed("Diagnosis", exc)
        except ValidationError as exc:
            logger.error("Diagnosis JSON did not match schema: %s", exc)
        return [Diagnosis(diagnosis="AI Analysis Result", confidence_level=0.5, reasoning=raw)]

    def answer_clinical_question(self, question: str = "", images: Sequence[str] | None = None) -> ClinicalAnswer:
        prompt = """
Answer the following clinical question in detail with reasoning.

Return ONLY a JSON object with keys "answer", "reasoning" and "topic"
("topic" is a short title for the case).
""".strip()
        if question:
            prompt += f"\n\nQuestion: {question}"
        raw = self._ask(prompt, images)
        try:
            return ClinicalAnswer.model_validate(extract_json(raw, "object"))
        except MalformedResponse as exc:
            log_malformed("Clinical answer", exc)
        except ValidationError as exc:
            logger.error("Clinical answer JSON did not match schema: %s", exc)
        return ClinicalAnswer(answer=raw, reasoning=f"Analysis performed by {self.cfg.model}", topic="Clinical Analysis")

    def summarize_question(self, question: str = "", images: Sequence[str] | None = None) -> str:
        prompt = (
            "Summarize the following clinical question or patient data into a concise "
            "1-2 sentence summary for a case title. Plain text only."
        )
        if question:
            prompt += f"\n\nInput: {question}"
        return self._ask(prompt, images).strip()

    def generate_presentation_outline(
        self,
        topic: str = "",
        question: str = "",
        answer: str = "",
        reasoning: str = "",
    ) -> List[str]:
        if topic:
            prompt = f"""
Generate a concise, high-yield presentation outline for the medical topic: {topic}.
Provide exactly 15 slide titles.
Return ONLY a JSON object with a single key "outline" whose value is an array of 15 strings.
""".strip()
        else:
            prompt = f"""
Generate a presentation outline of 10-12 topics based on the clinical case below.
The VERY FIRST topic MUST be "{CASE_SUMMARY_TOPIC}".
Return ONLY a JSON object with a single key "outline" containing an array of strings.

Case Details:
Question: {question}
Answer: {answer}
Reasoning: {reasoning}
""".strip()
        raw = self._ask(prompt)
        try:
            obj = extract_json(raw, "object")
            titles = obj.get("outline")
            if not isinstance(titles, list):
                titles = []
            outline = [t.strip() for t in titles if isinstance(t, str) and t.strip()]
            if outline:
                return outline
            raise MalformedResponse("Outline was empty.", raw)
        except MalformedResponse as exc:
            log_malformed("Outline", exc)
        return list(DEFAULT_OUTLINE)

    def generate_slide_content(
        self,
        topic: str,
        selected_topics: Sequence[str],
        question: str = "",
        answer: str = "",
        reasoning: str = "",
    ) -> List[Slide]:
        source = [f"- Main Topic: {topic}"]
        if question:
            source.append(f"- Full Original Question: {question}")
        if answer:
            source.append(f"- Full Original Answer: {answer}")
        if reasoning:
            source.append(f"- Full Original Reasoning: {reasoning}")
        topics_block = "\n".join(f"- {t}" for t in selected_topics)
        prompt = f"""
You are an expert in medical education. Generate detailed slide content for a
presentation from the list of topics below.

Source Information:
{chr(10).join(source)}

Topics for Slide Generation:
{topics_block}

Instructions:
1. Generate exactly one slide per topic, in the order given. Each slide's "title"
   must match its topic exactly, except that the topic "{CASE_SUMMARY_TOPIC}" is
   titled "Case Presentation" and built only from the original question, answer
   and a summary of the reasoning.
2. Content must be technically rich, detailed and condensed for a professional
   medical audience. Use tables often to compare concepts or summarize data.
3. Break topics into small, distinct points; prefer lists to paragraphs; aim for
   at most 6-8 points (list items or table rows) per slide.
4. Do not add a "Conclusion" or "Summary" slide unless it is one of the topics.

Each slide is {{"title": "...", "content": [ ...content items... ]}}.

{CONTENT_SCHEMA}

Return ONLY the JSON array of slides.
""".strip()
        raw = self._ask(prompt)
        try:
            result = parse_slides(raw)
        except MalformedResponse as exc:
            log_malformed("Slide content", exc)
            return fallback_slides(selected_topics, GENERATION_FAILED_TEXT)
        if result.repaired:
            logger.info("Repaired %s table row(s) in generated slides.", len(result.repairs))
        return result.slides

    def suggest_topics(self, existing_topics: Sequence[str], topic: str = "", question: str = "") -> List[str]:
        kind = "medical topic" if topic else "clinical question"
        subject = f"Topic: {topic}" if topic else f"Question: {question}"
        prompt = f"""
Based on the following {kind}, suggest 5-7 new, highly technical medical topics for a presentation.
Exclude existing topics: {", ".join(existing_topics)}

Return ONLY a JSON object with a single key "topics" containing an array of strings.
{subject}
""".strip()
        raw = self._ask(prompt)
        try:
            obj = extract_json(raw, "object")
        except MalformedResponse as exc:
            log_malformed("Topic suggestions", exc)
            return []
        topics = obj.get("topics")
        if not isinstance(topics, list):
            return []
        return [t.strip() for t in topics if isinstance(t, str) and t.strip()]

    def generate_single_slide(self, topic: str) -> Slide:
        prompt = f"""
You are an expert in medical education. Generate the content for a single
presentation slide on the topic below.

Topic: {topic}

Instructions:
1. The slide "title" must be exactly the topic above.
2. Content must be technically rich and detailed for a professional medical audience.
3. Break the topic into small, distinct points using bullet lists, numbered lists
   or tables. Avoid long paragraphs.
4. Do not write a conclusion or summary; end on a technical note.

{CONTENT_SCHEMA}

Return ONLY one JSON object with "title" and "content".
""".strip()
        raw = self._ask(prompt)
        try:
            slide = parse_single_slide(raw)
        except (MalformedResponse, SlideValidationError) as exc:
            logger.error("Single slide for %r could not be parsed: %s", topic, exc)
            return error_slide(topic, SINGLE_SLIDE_FAILED_TEXT)
        if not slide.title.strip():
            slide.title = topic
        return slide

    def modify_slides(self, slides: Sequence[Slide], selected_indices: Sequence[int], action: str) -> List[Slide]:
        """Return the complete modified deck; raise MalformedResponse when unusable."""
        if action not in MODIFY_ACTIONS:
            raise ValueError(f"Unknown slide action: {action}")
        payload: List[Dict[str, Any]] = [s.to_payload() for s in slides]
        prompt = f"""
Modify the following medical presentation slides based on the action: {action}.
- replace_content: rewrite the selected slides with fresh content on the same title.
- expand_selected: add more depth and detail to the selected slides.
- expand_content: expand the selected slides into additional slides placed right after them.
Selected indices: {", ".join(str(i) for i in selected_indices)}
Current slides: {json.dumps(payload, ensure_ascii=False)}

{CONTENT_SCHEMA}

Return ONLY the COMPLETE JSON array of all slides (modified and unmodified), in order.
""".strip()
        raw = self._ask(prompt)
        try:
            return parse_slides(raw).slides
        except MalformedResponse as exc:
            log_malformed(f"Modify slides ({action})", exc)
            raise
