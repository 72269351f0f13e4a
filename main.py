"""CLI entrypoint for generating and editing medical slide decks from the terminal."""
from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from rich.text import Text

try:
    from .ai_service import AiService
    from .llm import LLMConfig
    from .logging_utils import setup_logging
    from .memory_utils import delete_case, list_cases
    from .pipeline import Pipeline, RunConfig
except ImportError:
    sys.path.append(str(Path(__file__).resolve().parent))
    from ai_service import AiService
    from llm import LLMConfig
    from logging_utils import setup_logging
    from memory_utils import delete_case, list_cases
    from pipeline import Pipeline, RunConfig

logger = logging.getLogger("medigen")
VERSION = "0.1.0"
EXPORT_FORMATS = ("pdf", "docx", "pptx")


def print_helper() -> None:
    print("MediGen help")
    print("")
    print("Quick start:")
    print('  medigen --topic "Sepsis" --export pdf,docx,pptx')
    print('  medigen --question "65M with fever and hypotension after UTI. Next steps?" --image scan.png')
    print('  medigen --diagnose "45F, 3 days of RUQ pain, fever, jaundice"')
    print('  medigen --case <id> --add-topic "Septic shock vasopressors" --export pptx')
    print("  medigen --list-cases")
    print("  medigen --delete-case <id>")
    print("")
    print("Defaults:")
    print("  Root output dir: ~/medigen_runs or $MEDIGEN_ROOT_DIR")
    print("  Case store: ~/.medigen or $MEDIGEN_HOME")
    print("  API key: $GEMINI_API_KEY (a .env next to main.py is read)")
    print("")
    print("Case edits (slide indices are 0-based):")
    print("  --add-topic TEXT       Generate and append a slide for a topic (repeatable)")
    print("  --suggest              Ask for new topic suggestions")
    print("  --delete LIST          Delete slides, e.g. 2,3")
    print("  --move FROM:TO         Move one slide")
    print("  --refresh LIST         Regenerate the content of slides")
    print("  --expand LIST          Add depth to slides")
    print("  --raw                  Print the deck as raw JSON")
    print("")
    print("Full options:")
    print("  medigen --help")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate medical presentations, clinical answers and diagnoses.")
    p.add_argument("--version", action="version", version=f"medigen {VERSION}")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--topic", default=None, help="Medical topic for a new presentation")
    mode.add_argument("--question", default=None, help="Clinical question to answer and turn into a presentation")
    mode.add_argument("--diagnose", default=None, help="Patient data to analyse for provisional diagnoses")
    mode.add_argument("--case", default=None, help="Open a saved case for editing/export")
    mode.add_argument("--list-cases", action="store_true", help="List saved cases, newest first")
    mode.add_argument("--delete-case", default=None, metavar="ID", help="Delete a saved case")
    p.add_argument("--image", action="append", default=[], help="Image path or data URI (repeatable)")
    p.add_argument("--export", action="append", default=[], help="Export formats: pdf,docx,pptx")
    p.add_argument("--add-topic", action="append", default=[], help="Topic to add as a new slide (repeatable)")
    p.add_argument("--suggest", action="store_true", help="Fetch topic suggestions for the case")
    p.add_argument("--delete", default="", help="Comma-separated slide indices to delete")
    p.add_argument("--move", default="", help="Move a slide, FROM:TO")
    p.add_argument("--refresh", default="", help="Comma-separated slide indices to regenerate")
    p.add_argument("--expand", default="", help="Comma-separated slide indices to expand")
    p.add_argument("--raw", action="store_true", help="Print the final deck as raw JSON")
    p.add_argument("--no-approve", action="store_true", help="Skip outline approval loop")
    p.add_argument("--user", default="local", help="User id that owns new cases")
    p.add_argument(
        "--root-dir",
        default=None,
        help="Root directory for outputs (default: $MEDIGEN_ROOT_DIR or ~/medigen_runs)",
    )
    p.add_argument("--out-dir", default=None, help="Output directory (overrides --root-dir)")
    p.add_argument("--model", default=None, help="Model name (default: $MEDIGEN_MODEL)")
    p.add_argument("--retries", type=int, default=None, help="Retry count for AI requests")
    p.add_argument("--workers", type=int, default=None, help="Concurrent slide requests")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")
    return p.parse_args(argv)


def _slugify(s: str, max_len: int = 60) -> str:
    s = (s or "").strip()
    s = re.sub(r"[^a-zA-Z0-9]+", "_", s)
    s = s.strip("_")
    return (s or "session")[:max_len]


def _split_list_args(values: List[str]) -> List[str]:
    out: List[str] = []
    for v in values:
        if not v:
            continue
        parts = [p.strip() for p in v.replace(";", ",").split(",")]
        out.extend([p for p in parts if p])
    return out


def parse_indices(value: str) -> List[int]:
    try:
        return [int(p) for p in _split_list_args([value])]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated slide indices, got {value!r}") from None


def parse_move(value: str) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    m = re.fullmatch(r"\s*(\d+)\s*:\s*(\d+)\s*", value)
    if not m:
        raise argparse.ArgumentTypeError(f"expected FROM:TO, got {value!r}")
    return int(m.group(1)), int(m.group(2))


def parse_formats(values: List[str]) -> List[str]:
    formats = [f.lower().lstrip(".") for f in _split_list_args(values)]
    bad = [f for f in formats if f not in EXPORT_FORMATS]
    if bad:
        raise argparse.ArgumentTypeError(f"unsupported export format(s): {', '.join(bad)}")
    return list(dict.fromkeys(formats))


def print_cases(user_id: Optional[str] = None) -> None:
    table = Table(title="Saved cases")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Created")
    table.add_column("Title")
    table.add_column("Slides", justify="right")
    for case in list_cases(user_id):
        created = datetime.fromtimestamp(case.created_at / 1000).strftime("%Y-%m-%d %H:%M")
        slides = len(case.output_data.get("slides") or [])
        table.add_row(case.id, case.type, created, Text(case.title), str(slides) if slides else "")
    Console().print(table)


def build_run_config(args: argparse.Namespace) -> RunConfig:
    if args.topic is not None:
        mode, label = "topic", args.topic
    elif args.question is not None:
        mode, label = "question", "Q-" + " ".join(args.question.split()[:3])
    elif args.diagnose is not None:
        mode, label = "diagnosis", "Dx-" + " ".join(args.diagnose.split()[:3])
    elif args.case is not None:
        mode, label = "case", f"case-{args.case}"
    else:
        raise argparse.ArgumentTypeError("Provide one of --topic, --question, --diagnose, --case or --list-cases.")

    root_dir = args.root_dir or os.environ.get("MEDIGEN_ROOT_DIR", "~/medigen_runs")
    run_dir = Path(root_dir).expanduser().resolve() / _slugify(label)
    out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else run_dir

    return RunConfig(
        mode=mode,
        out_dir=out_dir,
        topic=(args.topic or "").strip(),
        question=(args.question or "").strip(),
        patient_data=(args.diagnose or "").strip(),
        images=list(args.image or []),
        case_id=args.case or "",
        export_formats=parse_formats(args.export or []),
        user_id=args.user,
        approve=not args.no_approve,
        verbose=args.verbose,
        add_topics=[t.strip() for t in args.add_topic if t and t.strip()],
        suggest=args.suggest,
        delete_indices=parse_indices(args.delete),
        move=parse_move(args.move),
        refresh_indices=parse_indices(args.refresh),
        expand_indices=parse_indices(args.expand),
        raw=args.raw,
    )


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] == "help":
        print_helper()
        return 0

    env_path = Path(__file__).parent / ".env"
    load_dotenv(env_path, override=False)
    args = parse_args(argv)

    if args.list_cases:
        setup_logging(args.verbose)
        print_cases(None if args.user == "local" else args.user)
        return 0

    if args.delete_case:
        setup_logging(args.verbose)
        if not delete_case(args.delete_case):
            logger.error("Case not found: %s", args.delete_case)
            return 1
        logger.info("Deleted case %s", args.delete_case)
        return 0

    try:
        cfg = build_run_config(args)
    except argparse.ArgumentTypeError as exc:
        setup_logging(args.verbose)
        logger.error("%s", exc)
        return 2

    cfg.out_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(args.verbose, log_path=cfg.out_dir / "run.log")

    llm_cfg = LLMConfig.from_env(model=args.model, retries=args.retries, max_workers=args.workers)
    if not llm_cfg.api_key:
        logger.error("GEMINI_API_KEY is not set.")
        return 2

    try:
        logger.info("Initializing LLM (%s)...", llm_cfg.model)
        pipeline = Pipeline(cfg, AiService(llm_cfg))
        result = pipeline.run()

        print("\nCase id:", result["case_id"])
        for path in result["exports"]:
            print("Saved:", path)
        if cfg.export_formats and len(result["exports"]) < len(cfg.export_formats):
            return 1
        return 0
    except Exception:
        logger.exception("Unhandled error in pipeline run")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
