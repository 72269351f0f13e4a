"""
Tests for the slide deck editing engine
"""

import threading
import time

import pytest
import requests

from ai_service import AiService
from deck_editor import DeckEditor
from errors import DeckEditError, MalformedResponse
from llm import LLMConfig
from models import ParagraphItem, Slide, SlideStatus
from slide_schema import GENERATION_FAILED_TEXT


def make_slide(title, text=None):
    return Slide(title=title, content=[ParagraphItem(text=text or f"{title} body")])


class FakeAi:
    """Collaborator double with per-topic behaviour hooks."""

    def __init__(self, modify_result=None, modify_error=None, suggestions=None):
        self.modify_result = modify_result
        self.modify_error = modify_error
        self.suggestions = suggestions or []
        self.hooks = {}
        self.modify_calls = []
        self.suggest_calls = []

    def generate_single_slide(self, topic):
        hook = self.hooks.get(topic)
        if hook is not None:
            hook()
        return make_slide(topic, f"content for {topic}")

    def modify_slides(self, slides, selected_indices, action):
        self.modify_calls.append((len(slides), list(selected_indices), action))
        if self.modify_error is not None:
            raise self.modify_error
        return self.modify_result

    def suggest_topics(self, existing, topic="", question=""):
        self.suggest_calls.append((list(existing), topic, question))
        return list(self.suggestions)


@pytest.fixture
def xyz():
    return [make_slide("X"), make_slide("Y"), make_slide("Z")]


class TestStructuralEdits:
    """Reorder, remove and selection bookkeeping."""

    def test_remove_selected_shifts_selection(self, xyz):
        editor = DeckEditor(xyz)
        editor.select(1)
        editor.select(2)
        removed = editor.remove_selected({1})
        assert removed == 1
        assert editor.titles == ["X", "Z"]
        assert editor.selected_indices == [1]

    def test_remove_selected_defaults_to_selection(self, xyz):
        editor = DeckEditor(xyz)
        editor.select(0)
        editor.select(2)
        editor.remove_selected()
        assert editor.titles == ["Y"]
        assert editor.selected_indices == []

    def test_remove_single(self, xyz):
        editor = DeckEditor(xyz)
        editor.select(2)
        removed = editor.remove(0)
        assert removed.title == "X"
        assert editor.titles == ["Y", "Z"]
        assert editor.selected_indices == [1]

    def test_select_all_and_clear(self, xyz):
        editor = DeckEditor(xyz)
        editor.select_all()
        assert editor.selected_indices == [0, 1, 2]
        assert editor.selected_ids == [s.slide_id for s in editor.slides]
        editor.select(1, checked=False)
        assert editor.selected_indices == [0, 2]
        editor.clear_selection()
        assert editor.selected_ids == []

    def test_reorder(self, xyz):
        editor = DeckEditor(xyz)
        editor.reorder(0, 2)
        assert editor.titles == ["Y", "Z", "X"]

    def test_reorder_same_index_is_noop(self, xyz):
        updates = []
        editor = DeckEditor(xyz, on_update=updates.append)
        editor.reorder(1, 1)
        assert editor.titles == ["X", "Y", "Z"]
        assert updates == []

    def test_reorder_out_of_range(self, xyz):
        editor = DeckEditor(xyz)
        with pytest.raises(IndexError):
            editor.reorder(0, 3)
        assert editor.titles == ["X", "Y", "Z"]

    def test_reorder_by_id_with_duplicate_titles(self):
        a, b, c = make_slide("Dup"), make_slide("Dup", "second"), make_slide("Other")
        editor = DeckEditor([a, b, c])
        ids = [s.slide_id for s in editor.slides]
        editor.reorder_by_id(ids[1], ids[2])
        assert [s.slide_id for s in editor.slides] == [ids[0], ids[2], ids[1]]

    def test_editor_does_not_share_slides(self, xyz):
        editor = DeckEditor(xyz)
        editor.slides[0].title = "changed"
        xyz[1].title = "changed too"
        assert editor.titles == ["X", "Y", "Z"]

    def test_on_update_snapshot(self, xyz):
        updates = []
        editor = DeckEditor(xyz, on_update=updates.append)
        editor.remove(1)
        assert [s["title"] for s in updates[-1]["slides"]] == ["X", "Z"]
        assert "Y" in updates[-1]["usedTopics"]


class TestAddByTopics:
    """Placeholder-then-replace generation."""

    def test_order_kept_when_later_topic_finishes_first(self):
        ai = FakeAi()
        b_done = threading.Event()

        def slow_a():
            b_done.wait(timeout=2)
            time.sleep(0.1)

        ai.hooks = {"A": slow_a, "B": b_done.set}
        updates = []
        editor = DeckEditor(ai=ai, on_update=updates.append, max_workers=2)
        outcome = editor.add_by_topics(["A", "B"])

        assert editor.titles == ["A", "B"]
        assert [s.content[0].text for s in editor.slides] == ["content for A", "content for B"]
        assert outcome.failures == {}
        assert outcome.succeeded == [0, 1]
        # B was applied while A was still a placeholder
        assert any(
            u["slides"][0]["content"] == [] and u["slides"][1]["content"] for u in updates
        )
        assert not any(s.is_placeholder for s in editor.slides)

    def test_partial_failure(self):
        ai = FakeAi()

        def boom():
            raise RuntimeError("quota")

        ai.hooks = {"Bad": boom}
        editor = DeckEditor([make_slide("Intro")], ai=ai)
        outcome = editor.add_by_topics(["Good", "Bad"])

        assert editor.titles == ["Intro", "Good", "Bad"]
        assert outcome.added == [1, 2]
        assert outcome.failures == {2: "quota"}
        assert outcome.partial_failure
        failed = editor.slides[2]
        assert failed.status == SlideStatus.ERROR
        assert failed.content[0].text == GENERATION_FAILED_TEXT
        assert editor.slides[1].status == SlideStatus.POPULATED

    def test_topics_marked_used(self):
        editor = DeckEditor(ai=FakeAi(), suggested_topics=["A", "C"])
        editor.add_by_topics([" A ", ""])
        assert editor.is_topic_used("A")
        assert editor.available_topics() == ["C"]

    def test_no_topics(self):
        editor = DeckEditor(ai=FakeAi())
        with pytest.raises(DeckEditError):
            editor.add_by_topics(["  "])


class TestModify:
    """Batched replace/expand requests."""

    def test_empty_result_leaves_deck(self):
        original = make_slide("Only")
        editor = DeckEditor([original], ai=FakeAi(modify_result=[]))
        with pytest.raises(DeckEditError):
            editor.replace_content([0])
        assert editor.titles == ["Only"]
        assert editor.slides[0].content[0].text == "Only body"

    def test_malformed_result_leaves_deck(self, xyz):
        ai = FakeAi(modify_error=MalformedResponse("bad", "raw"))
        editor = DeckEditor(xyz, ai=ai)
        with pytest.raises(DeckEditError):
            editor.expand_selected([1])
        assert editor.titles == ["X", "Y", "Z"]

    def test_rejected_request_leaves_deck(self, xyz, fake_llm_factory):
        err = requests.HTTPError("400 bad request")
        err.response = requests.Response()
        err.response.status_code = 400
        ai = AiService(LLMConfig(api_key="k", retries=3), llm=fake_llm_factory([err]))
        editor = DeckEditor(xyz, ai=ai)
        with pytest.raises(DeckEditError):
            editor.replace_content([0])
        assert editor.titles == ["X", "Y", "Z"]

    def test_replace_applies_and_keeps_ids(self, xyz):
        result = [make_slide("X"), make_slide("Y", "fresh"), make_slide("Z")]
        editor = DeckEditor(xyz, ai=FakeAi(modify_result=result))
        before = [s.slide_id for s in editor.slides]
        editor.select(1)
        editor.replace_content()
        assert editor.slides[1].content[0].text == "fresh"
        assert [s.slide_id for s in editor.slides] == before
        assert editor.selected_indices == []

    def test_expand_content_adds_slides(self, xyz):
        result = [make_slide("X"), make_slide("X part 2"), make_slide("Y"), make_slide("Z")]
        ai = FakeAi(modify_result=result)
        editor = DeckEditor(xyz, ai=ai)
        editor.expand_content([0])
        assert editor.titles == ["X", "X part 2", "Y", "Z"]
        assert ai.modify_calls == [(3, [0], "expand_content")]

    def test_empty_selection(self, xyz):
        editor = DeckEditor(xyz, ai=FakeAi(modify_result=xyz))
        with pytest.raises(DeckEditError):
            editor.replace_content()


class TestTopics:
    def test_suggestions_merge_without_duplicates(self):
        ai = FakeAi(suggestions=["B", "C"])
        editor = DeckEditor(ai=ai, topic="Sepsis", outline=["Intro"], suggested_topics=["A", "B"])
        assert editor.fetch_topic_suggestions() == ["A", "B", "C"]
        assert ai.suggest_calls == [(["Intro", "A", "B"], "Sepsis", "")]

    def test_to_json(self, xyz):
        editor = DeckEditor(xyz[:1])
        assert '"title": "X"' in editor.to_json()
        assert "slide_id" not in editor.to_json()
