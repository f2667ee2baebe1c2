from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.grammar_check.report_utils import (
    CheckReport,
    _format_suggestions,
    build_report_csv,
    build_report_markdown,
    highlighted_context,
)
from src.models import CheckResult, CheckStatistics, Issue

TEXT = "The cats is hungry."


def _issue(**overrides) -> Issue:
    data = {
        "category": "grammar",
        "severity": "error",
        "message": "Plural subject | singular verb",
        "offset": 4,
        "length": 7,
        "suggestions": ["are"],
        "confidence": 0.85,
        "source_engine": "rules",
    }
    data.update(overrides)
    return Issue(**data)


def _report(source: str, issues: list[Issue], *, failed: list[str] | None = None) -> CheckReport:
    result = CheckResult(
        issues=issues,
        statistics=CheckStatistics(text_length=len(TEXT), failed_engines=failed or []),
    )
    return CheckReport(source=source, text=TEXT, result=result)


def test_format_suggestions() -> None:
    assert _format_suggestions([]) == "—"
    assert _format_suggestions(["a", "b"]) == "a, b"
    assert _format_suggestions(["a", "b", "c", "d", "e"]) == "a, b, c (+2 more)"


def test_highlighted_context_marks_span() -> None:
    assert highlighted_context(TEXT, _issue()) == "The **cats is** hungry."
    assert highlighted_context(TEXT, _issue(), radius=2) == "e **cats is** h"


def test_markdown_report_layout() -> None:
    reports = [
        _report("notes.txt", [_issue(), _issue(category="spelling", offset=12, length=6, message="Typo")]),
        _report("<text>", [], failed=["languagetool"]),
    ]

    markdown = build_report_markdown(reports)

    assert markdown.startswith("# Grammar Check Report")
    assert "- Checked 2 source(s)" in markdown
    assert "- Total issues found: 2" in markdown
    assert "- grammar: 1 issue(s)" in markdown
    assert "- spelling: 1 issue(s)" in markdown
    assert "### notes.txt" in markdown
    assert "_Engines that failed: languagetool_" in markdown
    assert "_No issues found._" in markdown
    assert "| 4 | `rules` | grammar | error | cats is | Plural subject \\| singular verb | are |" in markdown
    # Sources are listed alphabetically
    assert markdown.index("### <text>") < markdown.index("### notes.txt")


def test_markdown_report_without_sources() -> None:
    markdown = build_report_markdown([])
    assert "- No issues found." in markdown
    assert "_No sources were checked._" in markdown


def test_csv_rows() -> None:
    issue = _issue(suggestions=[])
    rows = build_report_csv([_report("b.txt", [issue]), _report("a.txt", [_issue()])])

    assert rows[0][:4] == ["Source", "Issue ID", "Offset", "Length"]
    assert [row[0] for row in rows[1:]] == ["a.txt", "b.txt"]
    a_row, b_row = rows[1], rows[2]
    assert a_row[7] == "0.85"
    assert a_row[8] == "cats is"
    assert a_row[10] == "are"
    assert b_row[10] == ""
    assert b_row[1] == issue.id
    assert b_row[11] == "The **cats is** hungry."
