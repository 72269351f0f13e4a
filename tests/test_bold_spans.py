"""
Tests for the bold-span renderer
"""

from bold_spans import Span, bold_pattern, note_body, render_spans, spans_text


class TestRenderSpans:
    """Splitting text into plain and bold runs."""

    def test_single_bold_substring(self):
        spans = render_spans("Sepsis is life-threatening", ["life-threatening"])
        assert spans == [Span("Sepsis is ", False), Span("life-threatening", True)]

    def test_concatenation_reproduces_text(self):
        text = "Give fluids (30 mL/kg) then reassess MAP and lactate."
        spans = render_spans(text, ["30 mL/kg", "MAP", "lactate"])
        assert spans_text(spans) == text

    def test_regex_metacharacters_are_literal(self):
        spans = render_spans("Dose (mg/kg) matters", ["(mg/kg)"])
        assert Span("(mg/kg)", True) in spans

    def test_empty_text(self):
        assert render_spans("", ["x"]) == []

    def test_no_bold_returns_one_plain_span(self):
        assert render_spans("plain", None) == [Span("plain", False)]
        assert render_spans("plain", []) == [Span("plain", False)]
        assert render_spans("plain", ["", ""]) == [Span("plain", False)]

    def test_unmatched_entry_is_inert(self):
        assert render_spans("alpha beta", ["gamma"]) == [Span("alpha beta", False)]

    def test_repeated_occurrences_all_bold(self):
        spans = render_spans("MAP low, MAP high", ["MAP"])
        assert [s for s in spans if s.bold] == [Span("MAP", True), Span("MAP", True)]

    def test_overlap_follows_list_order(self):
        spans = render_spans("septic shock", ["septic", "septic shock"])
        assert spans[0] == Span("septic", True)
        spans = render_spans("septic shock", ["septic shock", "septic"])
        assert spans == [Span("septic shock", True)]

    def test_non_string_entries_ignored(self):
        assert render_spans("a b", [None, 3, "b"]) == [Span("a ", False), Span("b", True)]


class TestHelpers:
    """Pattern building and note prefix handling."""

    def test_bold_pattern_none_when_empty(self):
        assert bold_pattern([]) is None

    def test_note_body_strips_prefix(self):
        assert note_body("Note: check K+") == "check K+"
        assert note_body("note:check") == "check"
        assert note_body("No prefix") == "No prefix"
