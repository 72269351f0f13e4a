"""
Tests for JSON extraction from free-form model output
"""

import logging

import pytest

from errors import MalformedResponse
from response_parser import extract_json, extract_json_object, log_malformed, strip_code_fences


class TestExtractJson:
    """extract_json over noisy replies."""

    def test_array_with_prose(self):
        assert extract_json('Sure! [1, 2, 3] Hope this helps.', "array") == [1, 2, 3]

    def test_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_nothing_found(self):
        with pytest.raises(MalformedResponse) as exc:
            extract_json("no json here", "array")
        assert exc.value.raw == "no json here"

    def test_bad_json(self):
        with pytest.raises(MalformedResponse):
            extract_json("[1, 2,,]", "array")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            extract_json("[]", "string")

    def test_clean_escapes(self):
        raw = '[{"title": "A", "content": [{"type": "paragraph", "text": "line\\none"}]}]'
        value = extract_json(raw, "array", clean_escapes=True)
        assert value[0]["content"][0]["text"] == "line one"

    def test_head_and_tail_previews(self):
        exc = MalformedResponse("bad", "x" * 1000 + "END")
        assert len(exc.head) == 400
        assert exc.tail.endswith("END")

    def test_log_malformed(self, caplog):
        with caplog.at_level(logging.ERROR, logger="medigen"):
            log_malformed("Outline", MalformedResponse("bad", "raw text"))
        assert "RAW HEAD: raw text" in caplog.text
