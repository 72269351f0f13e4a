"""PowerPoint export: one 16:9 slide per deck slide.

Text height is estimated from a :class:`SlideGeometry` sizing reference; the
body font size is the largest step of a descending ladder whose estimated
height fits under the title band.
"""
from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Emu, Inches, Pt

try:
    from .bold_spans import Span, note_body, render_spans
    from .models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem
except ImportError:
    from bold_spans import Span, note_body, render_spans
    from models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem

BLANK_LAYOUT = 6


def _hex(value: str) -> RGBColor:
    return RGBColor.from_string(value.lstrip("#").upper())


@dataclass
class SlideGeometry:
    width: int = Inches(13.333)
    height: int = Inches(7.5)
    padding: int = Inches(0.5)
    title_height: int = Inches(0.9)
    item_gap_pt: float = 8.0
    title_size: int = 30
    body_sizes: Tuple[int, ...] = (20, 18, 16, 14, 12, 11, 10)
    # average glyph advance as a fraction of the font size
    char_width: float = 0.5
    line_spacing: float = 1.2
    cell_padding_pt: float = 7.2
    title_color: str = "#4A90E2"
    text_color: str = "#333333"
    header_fill: str = "#DCE6F0"
    header_text_color: str = "#2C3E50"
    row_even_fill: str = "#FFFFFF"
    row_odd_fill: str = "#F5F5F5"

    @property
    def body_width_pt(self) -> float:
        return Emu(self.width - 2 * self.padding).pt

    @property
    def body_height_pt(self) -> float:
        return Emu(self.height - 2 * self.padding - self.title_height).pt


def estimate_lines(text: str, width_pt: float, size: float, geo: SlideGeometry) -> int:
    per_line = max(1, int(width_pt / (size * geo.char_width)))
    return sum(max(1, math.ceil(len(part) / per_line)) for part in (text or "").split("\n"))


def _list_texts(item) -> List[str]:
    if isinstance(item, BulletListItem):
        return ["• " + e.text for e in item.items]
    return [f"{n}. {e.text}" for n, e in enumerate(item.items, 1)]


def estimate_item_height(item, width_pt: float, size: float, geo: SlideGeometry) -> float:
    lh = size * geo.line_spacing
    if isinstance(item, ParagraphItem):
        return estimate_lines(item.text, width_pt, size, geo) * lh
    if isinstance(item, NoteItem):
        return estimate_lines("Note: " + note_body(item.text), width_pt, size, geo) * lh
    if isinstance(item, (BulletListItem, NumberedListItem)):
        return sum(estimate_lines(t, width_pt, size, geo) for t in _list_texts(item)) * lh
    if isinstance(item, TableItem):
        if not item.headers:
            return 0.0
        col = width_pt / len(item.headers) - 2 * geo.cell_padding_pt
        total = 0.0
        for cells in [item.headers] + [r.cells for r in item.rows]:
            lines = max(estimate_lines(c, col, size, geo) for c in cells)
            total += lines * lh + 2 * geo.cell_padding_pt
        return total
    return 0.0


def fit_body_size(slide: Slide, geo: SlideGeometry) -> Tuple[int, List[float]]:
    """Largest ladder size whose estimated body height fits; smallest size otherwise."""
    width = geo.body_width_pt
    heights: List[float] = []
    for size in geo.body_sizes:
        heights = [estimate_item_height(it, width, size, geo) for it in slide.content]
        total = sum(heights) + geo.item_gap_pt * max(0, len(heights) - 1)
        if total <= geo.body_height_pt:
            return size, heights
    return geo.body_sizes[-1], heights


def _add_spans(paragraph, spans: Sequence[Span], size: int, color: str, italic: bool = False) -> None:
    for span in spans:
        run = paragraph.add_run()
        run.text = span.text
        run.font.size = Pt(size)
        run.font.bold = span.bold
        run.font.italic = italic or None
        run.font.color.rgb = _hex(color)


class PptxDeckWriter:
    def __init__(self, geometry: Optional[SlideGeometry] = None) -> None:
        self.geo = geometry or SlideGeometry()

    def _textbox(self, slide, top: int, height: int):
        geo = self.geo
        box = slide.shapes.add_textbox(geo.padding, top, geo.width - 2 * geo.padding, height)
        tf = box.text_frame
        tf.word_wrap = True
        tf.vertical_anchor = MSO_ANCHOR.TOP
        return tf

    def _title(self, slide, title: str) -> None:
        geo = self.geo
        tf = self._textbox(slide, geo.padding, geo.title_height)
        tf.vertical_anchor = MSO_ANCHOR.MIDDLE
        _add_spans(tf.paragraphs[0], [Span(title, True)], geo.title_size, geo.title_color)

    def _text_item(self, slide, item, top: int, height: int, size: int) -> None:
        geo = self.geo
        tf = self._textbox(slide, top, height)
        if isinstance(item, ParagraphItem):
            _add_spans(tf.paragraphs[0], render_spans(item.text, item.bold), size, geo.text_color)
        elif isinstance(item, NoteItem):
            spans = [Span("Note: ", False)] + render_spans(note_body(item.text))
            _add_spans(tf.paragraphs[0], spans, size, geo.text_color, italic=True)
        else:
            bullet = isinstance(item, BulletListItem)
            for n, entry in enumerate(item.items, 1):
                p = tf.paragraphs[0] if n == 1 else tf.add_paragraph()
                prefix = "• " if bullet else f"{n}. "
                _add_spans(p, [Span(prefix, False)] + render_spans(entry.text, entry.bold), size, geo.text_color)

    def _table(self, slide, item: TableItem, top: int, height: int, size: int) -> None:
        geo = self.geo
        if not item.headers:
            return
        rows, cols = len(item.rows) + 1, len(item.headers)
        shape = slide.shapes.add_table(rows, cols, geo.padding, top, geo.width - 2 * geo.padding, max(height, Pt(size * 2)))
        table = shape.table
        table.first_row = True
        grid = [item.headers] + [r.cells for r in item.rows]
        for r, cells in enumerate(grid):
            if r == 0:
                fill, color = geo.header_fill, geo.header_text_color
            else:
                fill = geo.row_even_fill if (r - 1) % 2 == 0 else geo.row_odd_fill
                color = geo.text_color
            for c, text in enumerate(cells):
                cell = table.cell(r, c)
                cell.fill.solid()
                cell.fill.fore_color.rgb = _hex(fill)
                p = cell.text_frame.paragraphs[0]
                if r == 0:
                    p.alignment = PP_ALIGN.CENTER
                    _add_spans(p, [Span(text, True)] if text else [], size, color)
                else:
                    _add_spans(p, render_spans(text), size, color)

    def _slide(self, prs, slide_data: Slide) -> None:
        geo = self.geo
        slide = prs.slides.add_slide(prs.slide_layouts[BLANK_LAYOUT])
        self._title(slide, slide_data.title)
        size, heights = fit_body_size(slide_data, geo)
        top = geo.padding + geo.title_height
        for item, h in zip(slide_data.content, heights):
            height = Pt(max(h, size * geo.line_spacing))
            if isinstance(item, TableItem):
                self._table(slide, item, top, height, size)
            else:
                self._text_item(slide, item, top, height, size)
            top += height + Pt(geo.item_gap_pt)

    def render(self, slides: Sequence[Slide], title: str = "") -> bytes:
        prs = Presentation()
        prs.slide_width = self.geo.width
        prs.slide_height = self.geo.height
        if title:
            prs.core_properties.title = title
        for slide in slides:
            self._slide(prs, slide)
        buf = io.BytesIO()
        prs.save(buf)
        return buf.getvalue()


def export_pptx(slides: Sequence[Slide], title: str = "", geometry: Optional[SlideGeometry] = None) -> bytes:
    return PptxDeckWriter(geometry).render(slides, title=title)
