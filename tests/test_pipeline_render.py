"""
Tests for export dispatch and file naming
"""

from unittest.mock import patch

import pytest

from errors import ExportFailure
from pipeline_render import Renderer


class TestRenderer:
    def test_slugify(self):
        assert Renderer.slugify_filename("Septic  shock in ICU") == "Septic_shock_in_ICU"
        assert Renderer.slugify_filename("   ") == "document"

    def test_slugify_path_characters(self):
        assert Renderer.slugify_filename("HIV/AIDS") == "HIV_AIDS"
        assert Renderer.slugify_filename('a\\b: "c"?') == "a_b_c"
        assert Renderer.slugify_filename("..") == "document"

    def test_export_topic_with_slash(self, temp_dir, sample_slides):
        path = Renderer().export(sample_slides, "pdf", temp_dir, topic="HIV/AIDS")
        assert path == temp_dir / "HIV_AIDS.pdf"
        assert path.exists()

    @pytest.mark.parametrize("fmt", ["pdf", "docx", "pptx"])
    def test_export_writes_file(self, temp_dir, sample_slides, fmt):
        path = Renderer().export(sample_slides, fmt, temp_dir, topic="Sepsis care")
        assert path == temp_dir / f"Sepsis_care.{fmt}"
        assert path.stat().st_size > 0

    def test_unknown_format(self, temp_dir, sample_slides):
        with pytest.raises(ExportFailure):
            Renderer().export(sample_slides, "odt", temp_dir, topic="x")

    def test_failure_wrapped_and_deck_untouched(self, temp_dir, sample_slides):
        def broken(slides, title=""):
            slides[0].title = "mutated"
            raise RuntimeError("disk on fire")

        with patch.dict("pipeline_render.EXPORTERS", {"pdf": broken}):
            with pytest.raises(ExportFailure, match="Failed to export PDF: disk on fire"):
                Renderer().export(sample_slides, "pdf", temp_dir, topic="x")
        assert sample_slides[0].title == "Sepsis"
        assert not (temp_dir / "x.pdf").exists()
