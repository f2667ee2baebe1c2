"""Markdown and CSV report builders for batches of check results.

The command-line entry point checks one or more sources and writes the
combined results through these helpers, so they are kept separate from the
checking core and can be tested without any engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..models import CheckResult, Issue


@dataclass
class CheckReport:
    """Result of checking one named source (a file path or ``<text>``)."""

    source: str
    text: str
    result: CheckResult

    @property
    def issues(self) -> list[Issue]:
        return list(self.result.issues)


def _format_suggestions(suggestions: list[str] | None, max_suggestions: int = 3) -> str:
    """Return a human-friendly, truncated suggestions string.

    If there are no suggestions returns the dash placeholder used in the
    Markdown output. Past ``max_suggestions`` the remainder is summarised as
    "(+N more)".
    """
    if not suggestions:
        return "—"
    if len(suggestions) <= max_suggestions:
        return ", ".join(suggestions)
    visible = ", ".join(suggestions[:max_suggestions])
    remaining = len(suggestions) - max_suggestions
    return f"{visible} (+{remaining} more)"


def _escape(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def issue_text(text: str, issue: Issue) -> str:
    """Return the flagged slice of ``text`` for ``issue``."""

    return text[issue.offset : issue.end]


def highlighted_context(text: str, issue: Issue, radius: int = 30) -> str:
    """Return the issue span wrapped in ``**`` with surrounding text."""

    start = max(0, issue.offset - radius)
    end = min(len(text), issue.end + radius)
    before = text[start : issue.offset]
    flagged = text[issue.offset : issue.end]
    after = text[issue.end : end]
    return f"{before}**{flagged}**{after}".replace("\n", " ").strip()


def build_report_markdown(reports: Iterable[CheckReport]) -> str:
    report_list = list(reports)
    total_sources = len(report_list)
    total_issues = sum(len(report.issues) for report in report_list)

    category_totals: dict[str, int] = {}
    for report in report_list:
        for issue in report.issues:
            key = issue.category.value
            category_totals[key] = category_totals.get(key, 0) + 1

    lines: list[str] = []
    lines.append("# Grammar Check Report")
    lines.append("")
    lines.append(f"- Checked {total_sources} source(s)")
    lines.append(f"- Total issues found: {total_issues}")

    lines.append("")
    lines.append("## Totals by Category")
    if category_totals:
        for category in sorted(category_totals):
            lines.append(f"- {category}: {category_totals[category]} issue(s)")
    else:
        lines.append("- No issues found.")

    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append("## Source Details")
    if not report_list:
        lines.append("")
        lines.append("_No sources were checked._")
        return "\n".join(lines)

    for report in sorted(report_list, key=lambda item: item.source.lower()):
        lines.append("")
        lines.append(f"### {report.source}")
        lines.append("")
        stats = report.result.statistics
        if stats.failed_engines:
            lines.append(f"_Engines that failed: {', '.join(stats.failed_engines)}_")
            lines.append("")
        if not report.issues:
            lines.append("_No issues found._")
            continue

        lines.append(f"Found {len(report.issues)} issue(s).")
        lines.append("")
        lines.append("| Offset | Engine | Category | Severity | Issue | Message | Suggestions | Context |")
        lines.append("| --- | --- | --- | --- | --- | --- | --- | --- |")
        for issue in report.issues:
            flagged = _escape(issue_text(report.text, issue)) or "—"
            message = _escape(issue.message)
            suggestions = _escape(_format_suggestions(issue.suggestions))
            context = _escape(highlighted_context(report.text, issue)) or "—"
            lines.append(
                f"| {issue.offset} | `{issue.source_engine}` | {issue.category.value} | "
                f"{issue.severity.value} | {flagged} | {message} | {suggestions} | {context} |"
            )

    return "\n".join(lines)


def build_report_csv(reports: Iterable[CheckReport]) -> list[list[str]]:
    """Convert the collected check reports into CSV data.

    Returns a list of rows, where each row is a list of string values.
    The first row contains the column headers.
    """

    rows: list[list[str]] = []

    rows.append([
        "Source",
        "Issue ID",
        "Offset",
        "Length",
        "Engine",
        "Category",
        "Severity",
        "Confidence",
        "Issue",
        "Message",
        "Suggestions",
        "Highlighted Context",
    ])

    for report in sorted(reports, key=lambda item: item.source.lower()):
        for issue in report.issues:
            txt = _format_suggestions(issue.suggestions)
            suggestions = "" if txt == "—" else txt
            rows.append([
                report.source,
                issue.id,
                str(issue.offset),
                str(issue.length),
                issue.source_engine,
                issue.category.value,
                issue.severity.value,
                f"{issue.confidence:.2f}",
                issue_text(report.text, issue),
                issue.message,
                suggestions,
                highlighted_context(report.text, issue),
            ])

    return rows
