"""Word export: native headings, runs, lists and tables via python-docx."""
from __future__ import annotations

import io
from typing import List, Optional, Sequence

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Pt

try:
    from .bold_spans import note_body, render_spans
    from .models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem
except ImportError:
    from bold_spans import note_body, render_spans
    from models import BulletListItem, NoteItem, NumberedListItem, ParagraphItem, Slide, TableItem

HEADER_FILL = "EBF2FA"
ODD_ROW_FILL = "F5F5F5"
BORDER_COLOR = "D3D3D3"


def add_runs(paragraph, text: str, bold: Optional[List[str]] = None, italic: bool = False) -> None:
    spans = render_spans(text, bold)
    if not spans:
        paragraph.add_run("")
        return
    for span in spans:
        run = paragraph.add_run(span.text)
        run.bold = span.bold or None
        if italic:
            run.italic = True


def _shade(cell, fill: str) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    tc_pr.append(shd)


def _set_borders(table, color: str = BORDER_COLOR) -> None:
    tbl_pr = table._tbl.tblPr
    borders = OxmlElement("w:tblBorders")
    for edge in ("top", "left", "bottom", "right", "insideH", "insideV"):
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:val"), "single")
        el.set(qn("w:sz"), "4")
        el.set(qn("w:space"), "0")
        el.set(qn("w:color"), color)
        borders.append(el)
    # tblBorders must precede tblLayout/tblCellMar/tblLook
    anchor = None
    for tag in ("w:tblLayout", "w:tblCellMar", "w:tblLook"):
        anchor = tbl_pr.find(qn(tag))
        if anchor is not None:
            break
    if anchor is not None:
        anchor.addprevious(borders)
    else:
        tbl_pr.append(borders)


def _mark_header_row(row) -> None:
    tr_pr = row._tr.get_or_add_trPr()
    el = OxmlElement("w:tblHeader")
    el.set(qn("w:val"), "true")
    tr_pr.append(el)


def new_numbering_instance(document) -> int:
    """Add a ``w:num`` on the 'List Number' definition that restarts at 1."""
    numbering = document.part.numbering_part.element
    style = document.styles["List Number"]
    num_id = style.element.pPr.numPr.numId.val
    abstract_id = numbering.num_having_numId(num_id).abstractNumId.val
    num = numbering.add_num(abstract_id)
    num.add_lvlOverride(ilvl=0).add_startOverride(1)
    return num.numId


def _set_numbering(paragraph, num_id: int) -> None:
    num_pr = paragraph._p.get_or_add_pPr().get_or_add_numPr()
    num_pr.get_or_add_ilvl().val = 0
    num_pr.get_or_add_numId().val = num_id


class DocxDeckWriter:
    def __init__(self, body_size: int = 11) -> None:
        self.body_size = body_size

    def _list(self, document, item) -> None:
        numbered = isinstance(item, NumberedListItem)
        num_id = new_numbering_instance(document) if numbered and item.items else None
        for entry in item.items:
            p = document.add_paragraph(style="List Number" if numbered else "List Bullet")
            if num_id is not None:
                _set_numbering(p, num_id)
            add_runs(p, entry.text, entry.bold)
            p.paragraph_format.space_after = Pt(2.5)

    def _table(self, document, item: TableItem) -> None:
        if not item.headers:
            return
        table = document.add_table(rows=1, cols=len(item.headers))
        table.style = "Table Grid"
        _set_borders(table)
        header = table.rows[0]
        _mark_header_row(header)
        for cell, text in zip(header.cells, item.headers):
            p = cell.paragraphs[0]
            p.alignment = WD_ALIGN_PARAGRAPH.CENTER
            run = p.add_run(text)
            run.bold = True
            _shade(cell, HEADER_FILL)
        for r, row in enumerate(item.rows):
            cells = table.add_row().cells
            for cell, text in zip(cells, row.cells):
                add_runs(cell.paragraphs[0], text)
                if r % 2 == 1:
                    _shade(cell, ODD_ROW_FILL)
        spacer = document.add_paragraph("")
        spacer.paragraph_format.space_after = Pt(10)

    def _item(self, document, item) -> None:
        if isinstance(item, ParagraphItem):
            p = document.add_paragraph()
            add_runs(p, item.text, item.bold)
            p.paragraph_format.space_after = Pt(5)
        elif isinstance(item, (BulletListItem, NumberedListItem)):
            self._list(document, item)
        elif isinstance(item, NoteItem):
            p = document.add_paragraph()
            p.add_run("Note: ").italic = True
            add_runs(p, note_body(item.text), italic=True)
            p.paragraph_format.space_after = Pt(5)
        elif isinstance(item, TableItem):
            self._table(document, item)

    def render(self, slides: Sequence[Slide], title: str = "") -> bytes:
        document = Document()
        document.styles["Normal"].font.size = Pt(self.body_size)
        if title:
            document.core_properties.title = title
        for slide in slides:
            heading = document.add_heading(slide.title, level=1)
            heading.paragraph_format.space_after = Pt(10)
            for item in slide.content:
                self._item(document, item)
        buf = io.BytesIO()
        document.save(buf)
        return buf.getvalue()


def export_docx(slides: Sequence[Slide], title: str = "") -> bytes:
    return DocxDeckWriter().render(slides, title=title)
