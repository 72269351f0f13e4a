"""PDF export with manual text layout on a reportlab canvas.

The cursor ``y`` is measured from the top edge of the page; it is flipped to
reportlab's bottom-left origin only when drawing.
"""
from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

try:
    from .bold_spans import Span, note_body, render_spans
    from .models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem
except ImportError:
    from bold_spans import Span, note_body, render_spans
    from models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem

Measure = Callable[[str, bool], float]
RGB = Tuple[int, int, int]
_WS_SPLIT = re.compile(r"(\s+)")


@dataclass
class PdfStyle:
    page_size: Tuple[float, float] = A4
    margin: float = 20 * mm
    line_factor: float = 0.4 * mm
    title_size: float = 18
    paragraph_size: float = 12
    list_size: float = 11
    note_size: float = 11
    table_size: float = 10
    title_gap: float = 15 * mm
    block_gap: float = 10 * mm
    item_gap: float = 3 * mm
    list_indent: float = 10 * mm
    cell_padding: float = 2 * mm
    title_color: str = "#4A90E2"
    text_color: str = "#333333"
    header_text_color: str = "#2C3E50"
    header_fill: RGB = (220, 230, 240)
    row_even_fill: RGB = (255, 255, 255)
    row_odd_fill: RGB = (245, 245, 245)
    grid_color: RGB = (211, 211, 211)
    font_regular: str = "Helvetica"
    font_bold: str = "Helvetica-Bold"
    font_italic: str = "Helvetica-Oblique"
    # optional {"regular": path, "bold": path, "italic": path} TTF files
    font_files: Dict[str, str] = field(default_factory=dict)

    def line_height(self, size: float) -> float:
        return size * self.line_factor

    @property
    def content_width(self) -> float:
        return self.page_size[0] - 2 * self.margin

    def register_fonts(self) -> None:
        for kind, path in self.font_files.items():
            name = f"MedigenSans-{kind}"
            if name not in pdfmetrics.getRegisteredFontNames():
                pdfmetrics.registerFont(TTFont(name, path))
            setattr(self, f"font_{kind}", name)


def split_word(word: str, bold: bool, max_width: float, measure: Measure) -> List[str]:
    """Break ``word`` into character chunks no wider than ``max_width`` (at least one char each)."""
    chunks: List[str] = []
    current = ""
    for ch in word:
        if current and measure(current + ch, bold) > max_width:
            chunks.append(current)
            current = ""
        current += ch
    if current:
        chunks.append(current)
    return chunks


def wrap_spans(spans: Sequence[Span], max_width: float, measure: Measure) -> List[List[Span]]:
    """Greedy word wrap that keeps each word's bold flag.

    Whitespace that falls on a break is dropped; a word wider than
    ``max_width`` is broken into chunks that each fit.
    """
    lines: List[List[Span]] = []
    current: List[Span] = []
    width = 0.0
    for span in spans:
        for word in _WS_SPLIT.split(span.text):
            if not word:
                continue
            w = measure(word, span.bold)
            if w > max_width and not word.isspace():
                while current and current[-1].text.isspace():
                    current.pop()
                if current:
                    lines.append(current)
                chunks = split_word(word, span.bold, max_width, measure)
                lines.extend([Span(c, span.bold)] for c in chunks[:-1])
                current = [Span(chunks[-1], span.bold)]
                width = measure(chunks[-1], span.bold)
                continue
            if current and width + w > max_width:
                lines.append(current)
                current, width = [], 0.0
                if word.isspace():
                    continue
            if not current and word.isspace():
                continue
            current.append(Span(word, span.bold))
            width += w
    if current:
        lines.append(current)
    return lines


def wrap_text(text: str, max_width: float, font: str, size: float) -> List[str]:
    measure = lambda s, _bold: pdfmetrics.stringWidth(s, font, size)  # noqa: E731
    lines = wrap_spans(render_spans(text), max_width, measure)
    return ["".join(s.text for s in line).rstrip() for line in lines] or [""]


def row_height(cells: Sequence[str], col_width: float, font: str, size: float, style: PdfStyle) -> float:
    """Tallest wrapped cell in the row times line height, plus padding."""
    inner = col_width - 2 * style.cell_padding
    lines = max([len(wrap_text(c, inner, font, size)) for c in cells] or [1])
    return max(1, lines) * style.line_height(size) + 2 * style.cell_padding


class PdfDeckWriter:
    def __init__(self, style: Optional[PdfStyle] = None, compress: bool = True) -> None:
        self.style = style or PdfStyle()
        self.style.register_fonts()
        self.compress = compress
        self.c: canvas.Canvas | None = None
        self.y = 0.0
        self.pages = 0

    @property
    def page_height(self) -> float:
        return self.style.page_size[1]

    @property
    def bottom(self) -> float:
        return self.page_height - self.style.margin

    def _new_page(self) -> None:
        self.c.showPage()
        self.pages += 1
        self.y = self.style.margin

    def _measure(self, size: float) -> Measure:
        st = self.style
        return lambda s, bold: pdfmetrics.stringWidth(s, st.font_bold if bold else st.font_regular, size)

    def _baseline(self, top: float, size: float) -> float:
        return self.page_height - (top + 0.8 * size)

    def _fill(self, rgb: RGB) -> None:
        self.c.setFillColorRGB(rgb[0] / 255.0, rgb[1] / 255.0, rgb[2] / 255.0)

    def _text_block(
        self,
        spans: List[Span],
        x: float,
        max_width: float,
        size: float,
        color: str,
        italic: bool = False,
    ) -> float:
        st = self.style
        lh = st.line_height(size)
        lines = wrap_spans(spans, max_width, self._measure(size))
        height = len(lines) * lh
        room = self.bottom - st.margin
        if self.y + height > self.bottom and height <= room:
            self._new_page()
        self.c.setFillColor(colors.HexColor(color))
        for line in lines:
            if self.y + lh > self.bottom:
                self._new_page()
                self.c.setFillColor(colors.HexColor(color))
            cx = x
            for seg in line:
                if italic:
                    font = st.font_italic
                else:
                    font = st.font_bold if seg.bold else st.font_regular
                self.c.setFont(font, size)
                self.c.drawString(cx, self._baseline(self.y, size), seg.text)
                cx += pdfmetrics.stringWidth(seg.text, font, size)
            self.y += lh
        return height

    def _title(self, title: str) -> None:
        st = self.style
        size = st.title_size
        lines = wrap_text(title, st.content_width, st.font_bold, size)
        height = len(lines) * st.line_height(size)
        if self.y + height > self.bottom:
            self._new_page()
        self.c.setFillColor(colors.HexColor(st.title_color))
        self.c.setFont(st.font_bold, size)
        for i, line in enumerate(lines):
            self.c.drawString(st.margin, self._baseline(self.y + i * st.line_height(size), size), line)
        self.y += height + st.title_gap

    def _draw_cell_text(self, lines: List[str], x: float, top: float, height: float, font: str, size: float) -> None:
        st = self.style
        lh = st.line_height(size)
        offset = st.cell_padding + (height - 2 * st.cell_padding - len(lines) * lh) / 2
        self.c.setFont(font, size)
        for i, line in enumerate(lines):
            self.c.drawString(x + st.cell_padding, self._baseline(top + offset + i * lh, size), line)

    def _table_header(self, headers: List[str], col_width: float) -> None:
        st = self.style
        size = st.table_size
        height = row_height(headers, col_width, st.font_bold, size, st)
        x = st.margin
        for text in headers:
            self._fill(st.header_fill)
            self.c.rect(x, self.page_height - self.y - height, col_width, height, fill=1, stroke=0)
            self.c.setFillColor(colors.HexColor(st.header_text_color))
            lines = wrap_text(text, col_width - 2 * st.cell_padding, st.font_bold, size)
            self._draw_cell_text(lines, x, self.y, height, st.font_bold, size)
            x += col_width
        self.y += height

    def _table(self, item: TableItem) -> None:
        st = self.style
        if not item.headers:
            return
        size = st.table_size
        col_width = st.content_width / len(item.headers)
        if self.y + st.line_height(size) + 2 * st.cell_padding > self.bottom:
            self._new_page()
        self._table_header(item.headers, col_width)

        for r, row in enumerate(item.rows):
            height = row_height(row.cells, col_width, st.font_regular, size, st)
            if self.y + height > self.bottom:
                self._new_page()
                self._table_header(item.headers, col_width)
            fill = st.row_even_fill if r % 2 == 0 else st.row_odd_fill
            x = st.margin
            for text in row.cells:
                bottom_y = self.page_height - self.y - height
                self._fill(fill)
                self.c.setStrokeColorRGB(*(v / 255.0 for v in st.grid_color))
                self.c.rect(x, bottom_y, col_width, height, fill=1, stroke=1)
                self.c.setFillColor(colors.HexColor(st.text_color))
                lines = wrap_text(text, col_width - 2 * st.cell_padding, st.font_regular, size)
                self._draw_cell_text(lines, x, self.y, height, st.font_regular, size)
                x += col_width
            self.y += height

    def _item(self, item) -> None:
        st = self.style
        if isinstance(item, ParagraphItem):
            self._text_block(render_spans(item.text, item.bold), st.margin, st.content_width, st.paragraph_size, st.text_color)
            self.y += st.block_gap
        elif isinstance(item, (BulletListItem, NumberedListItem)):
            x = st.margin + st.list_indent
            for n, entry in enumerate(item.items, 1):
                prefix = "• " if isinstance(item, BulletListItem) else f"{n}. "
                spans = [Span(prefix, False)] + render_spans(entry.text, entry.bold)
                self._text_block(spans, x, st.content_width - st.list_indent, st.list_size, st.text_color)
                self.y += st.item_gap
            self.y += st.block_gap
        elif isinstance(item, NoteItem):
            spans = [Span("Note: " + note_body(item.text), False)]
            self._text_block(spans, st.margin, st.content_width, st.note_size, st.text_color, italic=True)
            self.y += st.block_gap
        elif isinstance(item, TableItem):
            self._table(item)
            self.y += st.block_gap

    def render(self, slides: Sequence[Slide], title: str = "") -> bytes:
        buf = io.BytesIO()
        self.c = canvas.Canvas(
            buf,
            pagesize=self.style.page_size,
            invariant=1,
            pageCompression=1 if self.compress else 0,
        )
        if title:
            self.c.setTitle(title)
        self.pages = 1
        self.y = self.style.margin
        for i, slide in enumerate(slides):
            if i > 0:
                self._new_page()
            self._title(slide.title)
            for item in slide.content:
                self._item(item)
        self.c.save()
        return buf.getvalue()


def export_pdf(slides: Sequence[Slide], title: str = "", style: Optional[PdfStyle] = None, compress: bool = True) -> bytes:
    return PdfDeckWriter(style, compress=compress).render(slides, title=title)
