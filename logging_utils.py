"""Logging helpers for consistent console output."""
import logging
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

FALLBACK_LOG = "medigen.run.log"


def _file_handler(log_path: Path) -> Optional[logging.Handler]:
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, mode="w", encoding="utf-8")
    except OSError as exc:
        fallback = Path(tempfile.gettempdir()) / FALLBACK_LOG
        try:
            handler = logging.FileHandler(fallback, mode="w", encoding="utf-8")
        except OSError:
            print(
                f"[WARN] Failed to open log file at {log_path} ({exc}). Continuing without file logging.",
                file=sys.stderr,
            )
            return None
        print(
            f"[WARN] Failed to open log file at {log_path} ({exc}). Logging to {fallback} instead.",
            file=sys.stderr,
        )
        return handler


def setup_logging(verbose: bool = False, log_path: Optional[Path] = None) -> None:
    """Configure root logging for the app; quiets the HTTP client's chatter."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        handler = _file_handler(Path(log_path))
        if handler is not None:
            handlers.append(handler)
    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )
    if not verbose:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
