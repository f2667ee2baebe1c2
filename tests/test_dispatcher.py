"""Tests for the engine registry and the settle-all dispatcher."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.grammar_check.dispatcher import Dispatcher, EngineRegistry
from src.grammar_check.errors import EngineExecutionError, NormalizationError
from src.grammar_check.health import EngineHealthMonitor
from src.models import HealthStatus, IssueCategory

TEXT = "The cats is hungry."


class DummyEngine:
    def __init__(
        self,
        name: str,
        findings: list[Any] | None = None,
        *,
        family: str = "grammar",
        categories: frozenset[IssueCategory] = frozenset({IssueCategory.GRAMMAR}),
        languages: tuple[str, ...] = (),
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.family = family
        self.categories = categories
        self.languages = languages
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


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def record_success(self, engine_name: str) -> None:
        self.events.append(("success", engine_name))

    def record_failure(self, engine_name: str, error: BaseException) -> None:
        self.events.append(("failure", engine_name))


def _finding(offset: int, length: int, message: str, confidence: float = 0.8) -> dict:
    return {"offset": offset, "length": length, "message": message, "confidence": confidence}


def test_registry_rejects_duplicate_names() -> None:
    registry = EngineRegistry([DummyEngine("rules")])
    with pytest.raises(ValueError, match="already registered"):
        registry.register(DummyEngine("rules"))


def test_registry_select_filters() -> None:
    rules = DummyEngine("rules", languages=("en",))
    spelling = DummyEngine(
        "spelling", family="spelling", categories=frozenset({IssueCategory.SPELLING}), languages=("en",)
    )
    llm = DummyEngine("llm", family="llm", categories=frozenset(IssueCategory))
    registry = EngineRegistry([rules, spelling, llm])

    assert registry.names() == ["rules", "spelling", "llm"]
    assert [e.name for e in registry.select([IssueCategory.SPELLING])] == ["spelling", "llm"]
    assert [e.name for e in registry.select(disabled=["LLM"])] == ["rules", "spelling"]
    assert [e.name for e in registry.select(disabled=["spelling"])] == ["rules", "llm"]
    assert [e.name for e in registry.select(language="de-DE")] == ["llm"]


@pytest.mark.asyncio
async def test_dispatch_collects_results_in_registration_order() -> None:
    slow = DummyEngine("rules", [_finding(4, 7, "Agreement")], delay=0.02)
    fast = DummyEngine(
        "spelling",
        [{"index": 12, "token": "hungry", "candidates": []}],
        family="spelling",
        categories=frozenset({IssueCategory.SPELLING}),
    )
    dispatcher = Dispatcher(EngineRegistry([slow, fast]))

    outcome = await dispatcher.dispatch(TEXT)

    assert [issue.source_engine for issue in outcome.issues] == ["rules", "spelling"]
    assert outcome.engines_invoked == 2
    assert outcome.failed_engines == []
    assert outcome.per_engine_issue_counts == {"rules": 1, "spelling": 1}
    assert outcome.per_engine["rules"].duration_ms > 0


@pytest.mark.asyncio
async def test_partial_failure_keeps_other_engines() -> None:
    healthy = DummyEngine("rules", [_finding(4, 7, "Agreement")])
    broken = DummyEngine("llm", family="llm", error=RuntimeError("quota"))
    monitor = EngineHealthMonitor()
    dispatcher = Dispatcher(EngineRegistry([broken, healthy]), observer=monitor)

    outcome = await dispatcher.dispatch(TEXT)

    assert [issue.source_engine for issue in outcome.issues] == ["rules"]
    assert outcome.failed_engines == ["llm"]
    error = outcome.per_engine["llm"].error
    assert isinstance(error, EngineExecutionError)
    assert isinstance(error.cause, RuntimeError)
    assert monitor.status_of("llm") is HealthStatus.FAILING
    assert monitor.status_of("rules") is HealthStatus.HEALTHY


@pytest.mark.asyncio
async def test_engine_raising_without_awaiting_is_contained() -> None:
    class SyncFailure(DummyEngine):
        def check(self, text: str):  # type: ignore[override]
            raise OSError("server gone")

    dispatcher = Dispatcher(EngineRegistry([SyncFailure("languagetool"), DummyEngine("rules")]))

    outcome = await dispatcher.dispatch(TEXT)

    assert outcome.failed_engines == ["languagetool"]
    assert outcome.per_engine["rules"].succeeded


@pytest.mark.asyncio
async def test_observer_sees_every_outcome_before_fold() -> None:
    observer = RecordingObserver()
    engines = [
        DummyEngine("rules"),
        DummyEngine("style", family="style", error=ValueError("bad")),
        DummyEngine("spelling", family="spelling"),
    ]
    dispatcher = Dispatcher(EngineRegistry(engines), observer=observer)

    await dispatcher.dispatch(TEXT)

    assert observer.events == [
        ("success", "rules"),
        ("failure", "style"),
        ("success", "spelling"),
    ]


@pytest.mark.asyncio
async def test_short_text_skips_engines() -> None:
    engine = DummyEngine("rules")
    dispatcher = Dispatcher(EngineRegistry([engine]))

    outcome = await dispatcher.dispatch("  a ")

    assert outcome.issues == []
    assert outcome.engines_invoked == 0
    assert engine.calls == 0


@pytest.mark.asyncio
async def test_disabled_family_and_language_filter() -> None:
    rules = DummyEngine("rules", languages=("en",))
    style = DummyEngine("style", family="style", categories=frozenset({IssueCategory.STYLE}))
    dispatcher = Dispatcher(EngineRegistry([rules, style]))

    outcome = await dispatcher.dispatch(TEXT, disabled=["style"], language="fr-FR")

    assert outcome.engines_invoked == 0
    assert rules.calls == 0
    assert style.calls == 0


@pytest.mark.asyncio
async def test_default_category_follows_engine_categories() -> None:
    style = DummyEngine(
        "style",
        [_finding(0, 3, "Consider rephrasing")],
        family="style",
        categories=frozenset({IssueCategory.STYLE}),
    )
    outcome = await Dispatcher(EngineRegistry([style])).dispatch(TEXT)

    assert outcome.issues[0].category is IssueCategory.STYLE


@pytest.mark.asyncio
async def test_malformed_engine_output_is_isolated() -> None:
    rules = DummyEngine("rules", [_finding(4, 7, "Agreement")])
    malformed = DummyEngine("llm", family="llm", findings=[{"message": "no span at all"}])
    monitor = EngineHealthMonitor()
    dispatcher = Dispatcher(EngineRegistry([rules, malformed]), observer=monitor)

    outcome = await dispatcher.dispatch(TEXT)

    assert [issue.source_engine for issue in outcome.issues] == ["rules"]
    assert outcome.failed_engines == ["llm"]
    assert outcome.per_engine_issue_counts == {"rules": 1, "llm": 0}
    error = outcome.per_engine["llm"].error
    assert isinstance(error, EngineExecutionError)
    assert isinstance(error.cause, NormalizationError)
    assert monitor.status_of("llm") is HealthStatus.FAILING
    assert monitor.status_of("rules") is HealthStatus.HEALTHY
