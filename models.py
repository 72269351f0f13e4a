"""Pydantic models for slide content, cases and AI responses."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def new_slide_id() -> str:
    return uuid.uuid4().hex


class ListItem(BaseModel):
    text: str
    bold: Optional[List[str]] = None


class TableRow(BaseModel):
    cells: List[str] = Field(default_factory=list)


class ParagraphItem(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    text: str
    bold: Optional[List[str]] = None


class BulletListItem(BaseModel):
    type: Literal["bullet_list"] = "bullet_list"
    items: List[ListItem] = Field(default_factory=list)


class NumberedListItem(BaseModel):
    type: Literal["numbered_list"] = "numbered_list"
    items: List[ListItem] = Field(default_factory=list)


class NoteItem(BaseModel):
    type: Literal["note"] = "note"
    text: str


class TableItem(BaseModel):
    type: Literal["table"] = "table"
    headers: List[str]
    rows: List[TableRow] = Field(default_factory=list)


ContentItem = Annotated[
    Union[ParagraphItem, BulletListItem, NumberedListItem, NoteItem, TableItem],
    Field(discriminator="type"),
]

CONTENT_TYPES = ("paragraph", "bullet_list", "numbered_list", "note", "table")

# Fixed text of a slide whose generation failed; also how a failure is recognised on reload.
GENERATION_FAILED_TEXT = "Content generation failed. Please try again or select fewer topics."
SINGLE_SLIDE_FAILED_TEXT = "Failed to generate content."
FAILURE_TEXTS = (GENERATION_FAILED_TEXT, SINGLE_SLIDE_FAILED_TEXT)


class SlideStatus(str, Enum):
    PLACEHOLDER = "placeholder"
    POPULATED = "populated"
    ERROR = "error"


class Slide(BaseModel):
    """One titled slide.

    ``slide_id``, ``status`` and ``repaired`` live only for the editing
    session; they are excluded from every dump so the AI collaborator and
    the case store only ever see ``{title, content}``.
    """

    title: str
    content: List[ContentItem] = Field(default_factory=list)
    slide_id: str = Field(default_factory=new_slide_id, exclude=True)
    status: SlideStatus = Field(default=SlideStatus.POPULATED, exclude=True)
    repaired: bool = Field(default=False, exclude=True)

    @classmethod
    def placeholder(cls, title: str) -> "Slide":
        return cls(title=title, content=[], status=SlideStatus.PLACEHOLDER)

    @property
    def is_placeholder(self) -> bool:
        return self.status == SlideStatus.PLACEHOLDER

    @property
    def is_failure_marker(self) -> bool:
        if len(self.content) != 1 or not isinstance(self.content[0], ParagraphItem):
            return False
        return self.content[0].text in FAILURE_TEXTS

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def clone(self) -> "Slide":
        return self.model_copy(deep=True)


class MissingInformation(BaseModel):
    information: List[str] = Field(default_factory=list)
    tests: List[str] = Field(default_factory=list)


class Diagnosis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    diagnosis: str
    confidence_level: float = Field(0.5, alias="confidenceLevel", ge=0.0, le=1.0)
    reasoning: str = ""
    missing_information: MissingInformation = Field(
        default_factory=MissingInformation, alias="missingInformation"
    )


class ClinicalAnswer(BaseModel):
    answer: str
    reasoning: str = ""
    topic: str = "Clinical Analysis"


class StructuredQuestion(BaseModel):
    summary: str
    images: List[str] = Field(default_factory=list)


class Case(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    user_id: str = Field("local", alias="userId")
    type: Literal["diagnosis", "content-generator"] = "content-generator"
    title: str = ""
    created_at: int = Field(0, alias="createdAt")
    input_data: Dict[str, Any] = Field(default_factory=dict, alias="inputData")
    output_data: Dict[str, Any] = Field(default_factory=dict, alias="outputData")

    def slides(self) -> List[Slide]:
        """Stored slides, with failed ones marked ``ERROR`` again."""
        slides = [Slide.model_validate(s) for s in (self.output_data.get("slides") or [])]
        for slide in slides:
            if slide.is_failure_marker:
                slide.status = SlideStatus.ERROR
        return slides
