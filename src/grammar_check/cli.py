"""Command-line entry point for checking text files or inline text.

Usage:
    python -m src.grammar_check notes.txt essay.md --report out/report.md
    python -m src.grammar_check --text "The cats is hungry." --strict
    python -m src.grammar_check --status
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import dataclasses
import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from src.models import IssueCategory

from .checker import GrammarChecker, build_default_checker
from .config import CheckerConfig
from .errors import CheckTimeoutError
from .report_utils import CheckReport, build_report_csv, build_report_markdown

LOGGER = logging.getLogger(__name__)

INLINE_SOURCE = "<text>"


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check text for grammar, spelling, style and punctuation issues."
    )
    parser.add_argument(
        "files",
        nargs="*",
        type=Path,
        help="Text or Markdown files to check.",
    )
    parser.add_argument(
        "--text",
        default=None,
        help="Check this text instead of (or as well as) files.",
    )
    parser.add_argument(
        "--language",
        default=None,
        help="Language code (default: GRAMMAR_CHECK_LANGUAGE or en-GB)",
    )
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        choices=IssueCategory.all_values(),
        help="Only report issues in this category (can be specified multiple times).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Report low-confidence issues too.",
    )
    parser.add_argument(
        "--engine",
        action="append",
        dest="enabled_engines",
        default=[],
        help="Force an engine or engine family on (can be specified multiple times).",
    )
    parser.add_argument(
        "--disable-engine",
        action="append",
        dest="disabled_engines",
        default=[],
        help="Turn an engine or engine family off (can be specified multiple times).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-check timeout in seconds.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a Markdown report here and a CSV next to it; otherwise print a summary.",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the system status as JSON after checking.",
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Path to a .env file with GRAMMAR_CHECK_* settings.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def build_options(args: argparse.Namespace) -> dict:
    engines = {name: True for name in args.enabled_engines}
    engines.update({name: False for name in args.disabled_engines})
    options: dict = {"engines": engines, "strict_mode": args.strict}
    if args.categories:
        options["categories"] = args.categories
    if args.language:
        options["language"] = args.language
    return options


def collect_sources(args: argparse.Namespace) -> list[tuple[str, str]]:
    """Return ``(source, text)`` pairs; raises FileNotFoundError for missing files."""

    sources: list[tuple[str, str]] = []
    if args.text is not None:
        sources.append((INLINE_SOURCE, args.text))
    for path in args.files:
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        sources.append((str(path), path.read_text(encoding="utf-8")))
    return sources


async def run_checks(
    checker: GrammarChecker,
    sources: list[tuple[str, str]],
    options: dict,
    *,
    timeout: float | None = None,
) -> list[CheckReport]:
    reports: list[CheckReport] = []
    try:
        for source, text in sources:
            try:
                result = await checker.check(text, options, timeout=timeout)
            except CheckTimeoutError as exc:
                LOGGER.error("%s: %s", source, exc)
                continue
            LOGGER.info(
                "%s: %d issue(s) in %.1f ms",
                source,
                len(result.issues),
                result.statistics.processing_time_ms,
            )
            reports.append(CheckReport(source=source, text=text, result=result))
    finally:
        await checker.aclose()
    return reports


def write_reports(reports: list[CheckReport], report_path: Path) -> Path:
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(build_report_markdown(reports), encoding="utf-8")

    csv_path = report_path.with_suffix(".csv")
    with csv_path.open("w", encoding="utf-8", newline="") as csv_file:
        writer = csv.writer(csv_file)
        writer.writerows(build_report_csv(reports))
    return csv_path


def print_summary(reports: list[CheckReport]) -> None:
    for report in reports:
        print(f"{report.source}: {len(report.issues)} issue(s)")
        for issue in report.issues:
            flagged = report.text[issue.offset : issue.end]
            hint = f" -> {issue.suggestions[0]}" if issue.suggestions else ""
            print(
                f"  [{issue.severity.value}] {issue.offset}:{issue.length} "
                f"{flagged!r} {issue.message}{hint} ({issue.source_engine})"
            )


def main(argv: Optional[Iterable[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)

    try:
        sources = collect_sources(args)
    except FileNotFoundError as exc:
        LOGGER.error("%s", exc)
        return 1
    if not sources and not args.status:
        LOGGER.error("Nothing to check: pass file paths or --text")
        return 2

    config = CheckerConfig.from_env(args.dotenv)
    if args.language:
        config = dataclasses.replace(config, language=args.language)
    checker = build_default_checker(config)

    reports = asyncio.run(run_checks(checker, sources, build_options(args), timeout=args.timeout))

    if args.report is not None:
        csv_path = write_reports(reports, args.report)
        print(f"Grammar check report written to {args.report.resolve()}")
        print(f"CSV report written to {csv_path.resolve()}")
    else:
        print_summary(reports)

    if args.status:
        print(json.dumps(checker.get_system_status(), indent=2, default=str))
    return 0 if len(reports) == len(sources) else 1


if __name__ == "__main__":
    raise SystemExit(main())
