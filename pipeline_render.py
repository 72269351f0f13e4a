from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Dict, Sequence

try:
    from .errors import ExportFailure
    from .models import Slide
    from .render_docx import export_docx
    from .render_pdf import export_pdf
    from .render_pptx import export_pptx
except ImportError:
    from errors import ExportFailure
    from models import Slide
    from render_docx import export_docx
    from render_pdf import export_pdf
    from render_pptx import export_pptx

logger = logging.getLogger("medigen")

EXPORTERS: Dict[str, Callable[..., bytes]] = {
    "pdf": export_pdf,
    "docx": export_docx,
    "pptx": export_pptx,
}


class Renderer:
    @staticmethod
    def slugify_filename(s: str) -> str:
        """Whitespace, path separators and reserved characters become ``_``; an empty result is ``document``."""
        s = re.sub(r"[\s\\/:*?\"<>|\x00-\x1f]+", "_", (s or "").strip())
        s = s.strip("._")
        return s or "document"

    @staticmethod
    def render_bytes(slides: Sequence[Slide], fmt: str, title: str = "") -> bytes:
        fmt = (fmt or "").lower().lstrip(".")
        if fmt not in EXPORTERS:
            raise ExportFailure(fmt, ValueError(f"unsupported format {fmt!r}"))
        deck = [s.clone() for s in slides]
        try:
            return EXPORTERS[fmt](deck, title=title)
        except Exception as exc:
            logger.exception("Error exporting to %s", fmt.upper())
            raise ExportFailure(fmt, exc) from exc

    def export(self, slides: Sequence[Slide], fmt: str, out_dir: Path, topic: str = "") -> Path:
        fmt = (fmt or "").lower().lstrip(".")
        out_dir = Path(out_dir)
        path = out_dir / f"{self.slugify_filename(topic)}.{fmt}"
        logger.info("Rendering %s...", fmt.upper())
        data = self.render_bytes(slides, fmt, title=topic)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.error("Could not write %s: %s", path, exc)
            raise ExportFailure(fmt, exc) from exc
        logger.info("Saved %s: %s", fmt.upper(), path)
        return path
