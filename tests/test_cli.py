from __future__ import annotations

import csv
import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import src.grammar_check.cli as cli
from src.grammar_check.cache import TwoTierCache
from src.grammar_check.checker import GrammarChecker
from src.grammar_check.config import CheckerConfig
from src.grammar_check.dispatcher import Dispatcher, EngineRegistry
from src.grammar_check.engines import PatternGrammarEngine


@pytest.fixture
def dotenv_file(tmp_path: Path) -> Path:
    path = tmp_path / ".env"
    path.write_text("", encoding="utf-8")
    return path


@pytest.fixture
def fake_checker(monkeypatch: pytest.MonkeyPatch) -> list[CheckerConfig]:
    """Replace the default factory with a rules-only checker; records configs."""

    configs: list[CheckerConfig] = []

    def build(config: CheckerConfig) -> GrammarChecker:
        configs.append(config)
        dispatcher = Dispatcher(EngineRegistry([PatternGrammarEngine()]))
        return GrammarChecker(dispatcher, config=config, cache=TwoTierCache())

    monkeypatch.setattr(cli, "build_default_checker", build)
    return configs


def test_build_options_from_args() -> None:
    args = cli.parse_args(
        [
            "--text",
            "x",
            "--category",
            "grammar",
            "--category",
            "spelling",
            "--strict",
            "--engine",
            "llm",
            "--disable-engine",
            "style",
            "--language",
            "en-US",
        ]
    )

    assert cli.build_options(args) == {
        "engines": {"llm": True, "style": False},
        "strict_mode": True,
        "categories": ["grammar", "spelling"],
        "language": "en-US",
    }


def test_collect_sources_reads_files_and_inline_text(tmp_path: Path) -> None:
    document = tmp_path / "notes.txt"
    document.write_text("Some notes here.", encoding="utf-8")
    args = cli.parse_args(["--text", "Inline text.", str(document)])

    assert cli.collect_sources(args) == [
        (cli.INLINE_SOURCE, "Inline text."),
        (str(document), "Some notes here."),
    ]


def test_main_prints_summary(
    fake_checker: list[CheckerConfig], dotenv_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["--text", "The cats is hungry.", "--dotenv", str(dotenv_file)])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "<text>: 1 issue(s)" in output
    assert "'cats is'" in output
    assert "-> are" in output


def test_main_writes_markdown_and_csv_reports(
    fake_checker: list[CheckerConfig], dotenv_file: Path, tmp_path: Path
) -> None:
    document = tmp_path / "essay.md"
    document.write_text("The dogs is loud.\nThey could of stayed home.", encoding="utf-8")
    report_path = tmp_path / "out" / "report.md"

    exit_code = cli.main(
        [str(document), "--report", str(report_path), "--language", "en-US", "--dotenv", str(dotenv_file)]
    )

    assert exit_code == 0
    assert fake_checker[0].language == "en-US"
    markdown = report_path.read_text(encoding="utf-8")
    assert "- Total issues found: 2" in markdown
    assert f"### {document}" in markdown

    with report_path.with_suffix(".csv").open(encoding="utf-8", newline="") as f:
        rows = list(csv.reader(f))
    assert len(rows) == 3
    assert {row[8] for row in rows[1:]} == {"dogs is", "of"}


def test_main_prints_status(
    fake_checker: list[CheckerConfig], dotenv_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["--status", "--dotenv", str(dotenv_file)])

    assert exit_code == 0
    output = capsys.readouterr().out
    status = json.loads(output[output.index("{") :])
    assert status["engines"] == ["rules"]


def test_main_missing_file_returns_error(fake_checker: list[CheckerConfig], tmp_path: Path) -> None:
    assert cli.main([str(tmp_path / "missing.txt")]) == 1
    assert fake_checker == []


def test_main_without_input_returns_usage_error(fake_checker: list[CheckerConfig]) -> None:
    assert cli.main([]) == 2
