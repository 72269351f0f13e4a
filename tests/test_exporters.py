"""
Tests for the PDF, Word and PowerPoint exporters
"""

import io

import pytest
from docx import Document
from pptx import Presentation
from reportlab.pdfbase import pdfmetrics

from bold_spans import Span
from models import NumberedListItem, Slide, TableItem, TableRow
from render_docx import export_docx
from render_pdf import PdfDeckWriter, PdfStyle, export_pdf, row_height, wrap_spans, wrap_text
from render_pptx import SlideGeometry, export_pptx, fit_body_size


def char_measure(text, bold):
    """One unit per character; bold text is twice as wide."""
    return len(text) * (2 if bold else 1)


class TestPdfLayout:
    """Pure layout helpers."""

    def test_wrap_spans_breaks_on_width(self):
        lines = wrap_spans([Span("aaa bbb ccc", False)], 7, char_measure)
        assert ["".join(s.text for s in line) for line in lines] == ["aaa bbb", "ccc"]

    def test_wrap_spans_keeps_bold_flags(self):
        lines = wrap_spans([Span("plain ", False), Span("bold", True)], 100, char_measure)
        assert lines == [[Span("plain", False), Span(" ", False), Span("bold", True)]]

    def test_bold_measured_wider(self):
        lines = wrap_spans([Span("ab ", False), Span("cd", True)], 5, char_measure)
        assert len(lines) == 2

    def test_long_word_broken_to_fit(self):
        lines = wrap_spans([Span("x " + "y" * 20, False)], 5, char_measure)
        texts = ["".join(s.text for s in line) for line in lines]
        assert texts == ["x", "yyyyy", "yyyyy", "yyyyy", "yyyyy"]

    def test_wrapped_cell_lines_fit_column(self):
        width = 60
        lines = wrap_text("Trimethoprim-sulfamethoxazole 160/800 mg", width, "Helvetica", 10)
        assert len(lines) > 2
        assert all(pdfmetrics.stringWidth(line, "Helvetica", 10) <= width for line in lines)
        assert "".join(lines).replace(" ", "") == "Trimethoprim-sulfamethoxazole160/800mg"

    def test_row_height_counts_broken_word(self):
        style = PdfStyle()
        short = row_height(["abc"], 80, "Helvetica", 10, style)
        long = row_height(["Trimethoprim-sulfamethoxazole"], 80, "Helvetica", 10, style)
        assert long > short

    def test_wrap_text_empty(self):
        assert wrap_text("", 100, "Helvetica", 10) == [""]

    def test_row_height_uses_tallest_cell(self):
        style = PdfStyle()
        one = row_height(["a", "b"], 200, "Helvetica", 10, style)
        many = row_height(["a", "word " * 60], 200, "Helvetica", 10, style)
        assert one == pytest.approx(style.line_height(10) + 2 * style.cell_padding)
        assert many > one


class TestPdfExport:
    def test_pdf_bytes(self, sample_slides):
        data = export_pdf(sample_slides, title="Sepsis", compress=False)
        assert data.startswith(b"%PDF")
        assert b"Management" in data
        assert b"Lactate" in data

    def test_deterministic(self, sample_slides):
        assert export_pdf(sample_slides) == export_pdf(sample_slides)

    def test_long_table_spans_pages(self):
        rows = [TableRow(cells=[f"row {i}", "value " * 10]) for i in range(80)]
        slide = Slide(title="Big", content=[TableItem(headers=["Name", "Value"], rows=rows)])
        writer = PdfDeckWriter()
        data = writer.render([slide])
        assert data.startswith(b"%PDF")
        assert writer.pages > 1


class TestDocxExport:
    def test_titles_and_text(self, sample_slides):
        doc = Document(io.BytesIO(export_docx(sample_slides, title="Sepsis")))
        headings = [p.text for p in doc.paragraphs if p.style.name == "Heading 1"]
        assert headings == ["Sepsis", "Management"]
        text = "\n".join(p.text for p in doc.paragraphs)
        assert "Sepsis is life-threatening organ dysfunction." in text
        assert "Note: reassess volume status often." in text

    def test_bold_runs(self, sample_slides):
        doc = Document(io.BytesIO(export_docx(sample_slides)))
        para = next(p for p in doc.paragraphs if p.text.startswith("Sepsis is"))
        assert [r.text for r in para.runs if r.bold] == ["organ dysfunction"]

    def test_table(self, sample_slides):
        doc = Document(io.BytesIO(export_docx(sample_slides)))
        table = doc.tables[0]
        assert [c.text for c in table.rows[0].cells] == ["Marker", "Threshold"]
        assert [c.text for c in table.rows[2].cells] == ["MAP", "65 mmHg"]

    def test_numbered_lists_restart(self):
        lists = [NumberedListItem(items=[{"text": "a"}, {"text": "b"}]), NumberedListItem(items=[{"text": "c"}])]
        doc = Document(io.BytesIO(export_docx([Slide(title="T", content=lists)])))
        num_ids = set()
        for p in doc.paragraphs:
            num_pr = p._p.pPr.numPr if p._p.pPr is not None else None
            if num_pr is not None:
                num_ids.add(num_pr.numId.val)
        assert len(num_ids) == 2


class TestPptxExport:
    def _texts(self, slide):
        out = []
        for shape in slide.shapes:
            if shape.has_text_frame:
                out.append(shape.text_frame.text)
            elif shape.has_table:
                out.extend(c.text for row in shape.table.rows for c in row.cells)
        return out

    def test_slide_count_and_titles(self, sample_slides):
        prs = Presentation(io.BytesIO(export_pptx(sample_slides)))
        assert len(prs.slides) == 2
        assert self._texts(prs.slides[0])[0] == "Sepsis"
        assert self._texts(prs.slides[1])[0] == "Management"

    def test_content_text(self, sample_slides):
        prs = Presentation(io.BytesIO(export_pptx(sample_slides)))
        texts = self._texts(prs.slides[0])
        assert "Sepsis is life-threatening organ dysfunction." in texts
        assert "65 mmHg" in texts
        joined = "\n".join(self._texts(prs.slides[1]))
        assert "1. Cultures" in joined
        assert "Note: reassess volume status often." in joined

    def test_font_ladder_shrinks_for_long_content(self):
        geo = SlideGeometry()
        short = Slide(title="S", content=[{"type": "paragraph", "text": "brief"}])
        long = Slide(title="L", content=[{"type": "paragraph", "text": "word " * 600}])
        assert fit_body_size(short, geo)[0] == geo.body_sizes[0]
        assert fit_body_size(long, geo)[0] < geo.body_sizes[0]
