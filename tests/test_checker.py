"""End-to-end tests for :class:`GrammarChecker`."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.feedback import FeedbackLoop
from src.grammar_check.cache import TwoTierCache
from src.grammar_check.checker import GrammarChecker, build_default_checker
from src.grammar_check.config import CheckerConfig
from src.grammar_check.dispatcher import Dispatcher, EngineRegistry
from src.grammar_check.engines import LanguageToolEngine, LLMProofreadEngine, PatternGrammarEngine
from src.grammar_check.errors import CheckTimeoutError, GrammarCheckError
from src.grammar_check.module_loader import ReliableModuleLoader
from src.llm.service import LLMService
from src.models import HealthStatus, IssueCategory, LoadState

TEXT = "The cats is hungry."


class DummyEngine:
    def __init__(
        self,
        name: str,
        findings: list[Any] | None = None,
        *,
        family: str = "grammar",
        categories: frozenset[IssueCategory] = frozenset({IssueCategory.GRAMMAR}),
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.family = family
        self.categories = categories
        self.languages: tuple[str, ...] = ()
        self._findings = findings or []
        self._error = error
        self._delay = delay
        self.calls = 0

    async def check(self, text: str) -> list[Any]:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._findings


class FailingStrategy:
    def __init__(self, name: str, error: Exception) -> None:
        self.name = name
        self._error = error

    def load(self) -> Any:
        raise self._error


def _checker(*engines: Any, cache: bool = True, **kwargs: Any) -> GrammarChecker:
    config = kwargs.pop("config", CheckerConfig())
    return GrammarChecker(
        Dispatcher(EngineRegistry(engines)),
        config=config,
        cache=TwoTierCache() if cache else None,
        **kwargs,
    )


def _style_engine() -> DummyEngine:
    return DummyEngine(
        "style",
        [{"offset": 0, "length": 3, "message": "Weak opening", "confidence": 0.4}],
        family="style",
        categories=frozenset({IssueCategory.STYLE}),
    )


def _spelling_engine() -> DummyEngine:
    return DummyEngine(
        "spelling",
        [{"index": 12, "token": "hungry", "candidates": ["hungrier"]}],
        family="spelling",
        categories=frozenset({IssueCategory.SPELLING}),
    )


@pytest.mark.asyncio
async def test_grammar_engine_reports_agreement_error() -> None:
    checker = _checker(PatternGrammarEngine())

    result = await checker.check(TEXT)

    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.category is IssueCategory.GRAMMAR
    assert TEXT[issue.offset : issue.end] == "cats is"
    assert issue.suggestions == ["are"]
    assert result.statistics.engines_invoked == 1
    assert result.statistics.per_engine_issue_counts == {"rules": 1}


@pytest.mark.asyncio
async def test_second_check_is_served_from_cache() -> None:
    engine = PatternGrammarEngine()
    checker = _checker(engine)

    first = await checker.check(TEXT)
    second = await checker.check(TEXT)

    assert not first.statistics.from_cache
    assert second.statistics.from_cache
    assert second.statistics.engines_invoked == 0
    assert second.issues == first.issues
    stats = checker.get_stats()
    assert stats["checks"] == 2
    assert stats["cache_hits"] == 1


@pytest.mark.asyncio
async def test_whitespace_variant_is_checked_against_its_own_text() -> None:
    engine = PatternGrammarEngine()
    checker = _checker(engine)
    spaced = "The      cats is hungry."

    await checker.check(spaced)
    result = await checker.check(TEXT)

    assert not result.statistics.from_cache
    assert result.statistics.text_length == len(TEXT)
    issue = result.issues[0]
    assert TEXT[issue.offset : issue.end] == "cats is"

    # The entry now belongs to the exact text checked last
    again = await checker.check(TEXT)
    assert again.statistics.from_cache
    assert again.issues == result.issues


@pytest.mark.asyncio
async def test_different_options_do_not_share_cache_entries() -> None:
    engine = DummyEngine("rules", [{"offset": 4, "length": 7, "message": "Agreement"}])
    checker = _checker(engine)

    await checker.check(TEXT)
    await checker.check(TEXT, {"strict_mode": True})

    assert engine.calls == 2


@pytest.mark.asyncio
async def test_all_engines_failing_returns_empty_result() -> None:
    engines = [
        DummyEngine("rules", error=RuntimeError("boom")),
        DummyEngine("spelling", family="spelling", error=OSError("dictionary missing")),
        DummyEngine("style", family="style", error=ValueError("bad rule")),
    ]
    checker = _checker(*engines)

    result = await checker.check(TEXT)

    assert result.issues == []
    assert sorted(result.statistics.failed_engines) == ["rules", "spelling", "style"]
    report = checker.get_health_report()
    assert all(record.status is HealthStatus.FAILING for record in report.engines.values())
    assert len(report.engines) == 3

    # Degraded results are not cached
    await checker.check(TEXT)
    assert engines[0].calls == 2


@pytest.mark.asyncio
async def test_partial_failure_keeps_healthy_results() -> None:
    checker = _checker(PatternGrammarEngine(), DummyEngine("llm", family="llm", error=TimeoutError()))

    result = await checker.check(TEXT)

    assert [issue.source_engine for issue in result.issues] == ["rules"]
    assert result.statistics.failed_engines == ["llm"]


@pytest.mark.asyncio
async def test_malformed_engine_output_keeps_other_results() -> None:
    malformed = DummyEngine("llm", [{"message": "Odd word", "confidence": "high"}], family="llm")
    checker = _checker(PatternGrammarEngine(), malformed)

    result = await checker.check(TEXT)

    assert [issue.source_engine for issue in result.issues] == ["rules"]
    assert result.statistics.failed_engines == ["llm"]
    assert checker.get_health_report().engines["llm"].status is HealthStatus.FAILING


@pytest.mark.asyncio
async def test_llm_confidence_words_do_not_abort_check() -> None:
    class Service:
        def generate(self, user_prompts, *, filter_json=False):
            return {"issues": [{"text": "hungry", "message": "Odd word", "confidence": "high"}]}

    checker = _checker(PatternGrammarEngine(), LLMProofreadEngine(Service()), cache=False)

    result = await checker.check(TEXT)

    assert result.statistics.failed_engines == []
    assert sorted(issue.source_engine for issue in result.issues) == ["llm", "rules"]


@pytest.mark.asyncio
async def test_category_filter_runs_before_overlap_resolution() -> None:
    mixed = DummyEngine(
        "lt",
        [
            {"offset": 4, "length": 6, "message": "Comma", "category": "punctuation", "confidence": 0.9},
            {"offset": 5, "length": 4, "message": "Agreement", "category": "grammar", "confidence": 0.6},
        ],
        categories=frozenset({IssueCategory.GRAMMAR, IssueCategory.PUNCTUATION}),
    )
    checker = _checker(mixed)

    result = await checker.check(TEXT, {"categories": ["grammar"], "strict_mode": True})

    assert [issue.message for issue in result.issues] == ["Agreement"]


@pytest.mark.asyncio
async def test_issue_order_does_not_depend_on_engine_timing() -> None:
    def engines(rules_delay: float, spelling_delay: float) -> list[DummyEngine]:
        return [
            DummyEngine(
                "rules",
                [
                    {"offset": 4, "length": 7, "message": "Agreement", "confidence": 0.8},
                    {"offset": 0, "length": 3, "message": "Article", "confidence": 0.7},
                ],
                delay=rules_delay,
            ),
            DummyEngine(
                "spelling",
                [
                    {"index": 12, "token": "hungry", "candidates": ["hungrier"]},
                    {"offset": 9, "length": 2, "message": "Verb", "category": "spelling", "confidence": 0.8},
                ],
                family="spelling",
                categories=frozenset({IssueCategory.SPELLING}),
                delay=spelling_delay,
            ),
        ]

    slow_rules = await _checker(*engines(0.03, 0.0), cache=False).check(TEXT)
    slow_spelling = await _checker(*engines(0.0, 0.03), cache=False).check(TEXT)

    assert slow_rules.issues == slow_spelling.issues
    assert len(slow_rules.issues) == 3
    spans = sorted((issue.offset, issue.end) for issue in slow_rules.issues)
    for (_, first_end), (second_start, _) in zip(spans, spans[1:]):
        assert first_end <= second_start


@pytest.mark.asyncio
async def test_exhausted_loader_is_reported_in_system_status() -> None:
    loader = ReliableModuleLoader(
        [
            FailingStrategy("local", OSError("java not found")),
            FailingStrategy("remote", ValueError("no remote LanguageTool server configured")),
            FailingStrategy("public_api", ConnectionError("offline")),
        ]
    )
    engine = LanguageToolEngine(loader, ignored_words=set())
    checker = _checker(engine, PatternGrammarEngine(), loader=loader)

    result = await checker.check(TEXT)
    status = checker.get_system_status()

    assert result.statistics.failed_engines == ["languagetool"]
    assert len(result.issues) == 1
    module = status["module"]
    assert module["state"] == LoadState.FAILED.value
    for name in ("local", "remote", "public_api"):
        assert name in module["last_error"]
    assert [a["strategy"] for a in module["strategy_attempts"]] == ["local", "remote", "public_api"]
    assert status["health"]["engines"]["languagetool"]["status"] == "failing"


@pytest.mark.asyncio
async def test_reinitialize_module_allows_a_fresh_load() -> None:
    loader = ReliableModuleLoader([FailingStrategy("local", OSError("java not found"))])
    checker = _checker(LanguageToolEngine(loader, ignored_words=set()), loader=loader)
    await checker.check(TEXT)
    assert loader.state is LoadState.FAILED

    checker.reinitialize_module()

    assert loader.state is LoadState.IDLE


@pytest.mark.asyncio
async def test_check_is_idempotent_without_cache() -> None:
    checker = _checker(PatternGrammarEngine(), _spelling_engine(), cache=False)

    first = await checker.check(TEXT)
    second = await checker.check(TEXT)

    assert first.issues == second.issues
    assert not second.statistics.from_cache


@pytest.mark.asyncio
async def test_timeout_raises_and_skips_cache() -> None:
    slow = DummyEngine("rules", [{"offset": 4, "length": 7, "message": "Agreement"}], delay=0.2)
    checker = _checker(slow)

    with pytest.raises(CheckTimeoutError):
        await checker.check(TEXT, timeout=0.01)

    await asyncio.sleep(0.3)
    assert len(checker.cache) == 0
    assert checker.get_stats()["timeouts"] == 1


@pytest.mark.asyncio
async def test_invalid_input_returns_empty_result() -> None:
    engine = DummyEngine("rules")
    checker = _checker(engine)

    short = await checker.check(" a ")
    wrong_type = await checker.check(42)  # type: ignore[arg-type]

    assert short.issues == [] and short.statistics.text_length == 3
    assert wrong_type.issues == []
    assert engine.calls == 0


@pytest.mark.asyncio
async def test_relaxed_mode_hides_low_confidence_issues() -> None:
    checker = _checker(_style_engine(), cache=False)

    relaxed = await checker.check(TEXT)
    strict = await checker.check(TEXT, {"strict_mode": True})

    assert relaxed.issues == []
    assert [issue.message for issue in strict.issues] == ["Weak opening"]


@pytest.mark.asyncio
async def test_category_filter_limits_engines_and_issues() -> None:
    rules = PatternGrammarEngine()
    spelling = _spelling_engine()
    checker = _checker(rules, spelling)

    result = await checker.check(TEXT, {"categories": ["spelling"]})

    assert [issue.category for issue in result.issues] == [IssueCategory.SPELLING]
    assert result.statistics.engines_invoked == 1


@pytest.mark.asyncio
async def test_engine_toggle_disables_family() -> None:
    spelling = _spelling_engine()
    checker = _checker(PatternGrammarEngine(), spelling)

    result = await checker.check(TEXT, {"engines": {"spelling": False}})

    assert spelling.calls == 0
    assert [issue.source_engine for issue in result.issues] == ["rules"]


@pytest.mark.asyncio
async def test_results_sorted_by_priority() -> None:
    checker = _checker(PatternGrammarEngine(), _spelling_engine())

    result = await checker.check(TEXT)

    assert [issue.category for issue in result.issues] == [IssueCategory.SPELLING, IssueCategory.GRAMMAR]


@pytest.mark.asyncio
async def test_rejected_feedback_lowers_confidence_of_later_checks() -> None:
    feedback = FeedbackLoop()
    checker = _checker(PatternGrammarEngine(), cache=False, feedback=feedback)
    issue = (await checker.check(TEXT)).issues[0]

    for _ in range(3):
        receipt = await checker.process_feedback(
            {"issue": issue.model_dump(), "action": "rejected", "context": {"text": TEXT}}
        )
        assert receipt.stored

    assert receipt.confidence < 0.5
    assert (await checker.check(TEXT)).issues == []
    assert (await checker.check(TEXT, {"strict_mode": True})).issues[0].confidence == pytest.approx(
        receipt.confidence
    )


@pytest.mark.asyncio
async def test_process_feedback_requires_feedback_loop() -> None:
    checker = _checker(PatternGrammarEngine())
    issue = (await checker.check(TEXT)).issues[0]

    with pytest.raises(GrammarCheckError):
        await checker.process_feedback({"issue": issue.model_dump(), "action": "accepted"})


@pytest.mark.asyncio
async def test_system_status_and_maintenance() -> None:
    checker = _checker(PatternGrammarEngine(), DummyEngine("llm", family="llm", error=RuntimeError("x")))
    await checker.check(TEXT)

    status = checker.get_system_status()
    assert set(status) == {"engines", "health", "stats", "module", "feedback", "llm"}
    assert status["llm"] is None
    assert status["engines"] == ["rules", "llm"]
    assert status["module"] is None
    assert status["stats"]["cache"]["misses"] == 1

    checker.reset_health_monitoring()
    checker.clear_cache()

    assert checker.get_health_report().overall is HealthStatus.HEALTHY
    assert len(checker.cache) == 0
    await checker.aclose()


def test_build_default_checker_registers_standard_engines(tmp_path: Path) -> None:
    config = CheckerConfig(feedback_log_path=tmp_path / "feedback.jsonl")

    checker = build_default_checker(config)

    assert checker.registry.names() == ["languagetool", "rules", "spelling", "style", "learned"]
    assert checker.loader is not None
    assert checker.loader.strategy_names == ["local", "remote", "public_api"]
    assert checker.feedback is not None
    assert checker.cache is not None


def test_build_default_checker_with_llm_service() -> None:
    class Provider:
        def __init__(self, name: str, available: bool) -> None:
            self.name = name
            self._available = available

        def generate(self, user_prompts, *, filter_json=False):
            return {"issues": []}

        def health_check(self) -> bool:
            return self._available

    service = LLMService([Provider("gemini", False), Provider("mistral", True)])
    config = CheckerConfig(llm_enabled=True, feedback_enabled=False, cache_enabled=False)

    checker = build_default_checker(config, llm_service=service)

    assert checker.registry.names() == ["languagetool", "rules", "spelling", "style", "llm"]
    assert checker.cache is None
    assert checker.get_system_status()["llm"] == {
        "providers": ["gemini", "mistral"],
        "available": {"gemini": False, "mistral": True},
    }
