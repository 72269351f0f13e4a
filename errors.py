"""Error taxonomy shared by the parser, validator, editor and exporters."""
from __future__ import annotations

from dataclasses import dataclass


class MedigenError(Exception):
    pass


class MalformedResponse(MedigenError):
    """AI output could not be read as the expected JSON shape."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw or ""

    @property
    def head(self) -> str:
        return self.raw[:400]

    @property
    def tail(self) -> str:
        return self.raw[-400:]


class SlideValidationError(MedigenError):
    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class DeckEditError(MedigenError):
    """A deck mutation was rejected; the deck is unchanged."""


class ExportFailure(MedigenError):
    def __init__(self, fmt: str, cause: BaseException) -> None:
        super().__init__(f"Failed to export {fmt.upper()}: {cause}")
        self.fmt = fmt
        self.cause = cause


class LLMError(MedigenError):
    pass


@dataclass(frozen=True)
class ValidationRepaired:
    """A table row whose cell count was forced to match its headers."""

    slide_title: str
    item_index: int
    row_index: int
    expected: int
    actual: int

    def describe(self) -> str:
        action = "padded" if self.actual < self.expected else "truncated"
        return (
            f"slide {self.slide_title!r} item {self.item_index} row {self.row_index}: "
            f"{action} {self.actual} -> {self.expected} cells"
        )
