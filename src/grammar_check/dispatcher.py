"""Engine registry and settle-all parallel dispatch."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from src.models import Issue, IssueCategory

from .engines.base import CheckerEngine, supports_language
from .errors import EngineExecutionError, NormalizationError
from .health import HealthObserver
from .normalizer import IssueNormalizer

LOGGER = logging.getLogger(__name__)


class EngineRegistry:
    """Ordered, explicitly populated set of engines."""

    def __init__(self, engines: Iterable[CheckerEngine] = ()) -> None:
        self._engines: dict[str, CheckerEngine] = {}
        for engine in engines:
            self.register(engine)

    def register(self, engine: CheckerEngine) -> None:
        if engine.name in self._engines:
            raise ValueError(f"Engine '{engine.name}' is already registered")
        self._engines[engine.name] = engine
        LOGGER.debug("Registered engine '%s' (%s)", engine.name, engine.family)

    def __iter__(self):
        return iter(self._engines.values())

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, name: str) -> bool:
        return name in self._engines

    def get(self, name: str) -> CheckerEngine | None:
        return self._engines.get(name)

    def names(self) -> list[str]:
        return list(self._engines)

    def select(
        self,
        categories: Iterable[IssueCategory] | None = None,
        *,
        disabled: Iterable[str] = (),
        language: str | None = None,
    ) -> list[CheckerEngine]:
        """Engines to run, in registration order.

        ``disabled`` may name engines or engine families.
        """

        wanted = set(categories) if categories is not None else None
        off = {name.lower() for name in disabled}
        selected: list[CheckerEngine] = []
        for engine in self._engines.values():
            if engine.name.lower() in off or engine.family.lower() in off:
                continue
            if wanted is not None and not (set(engine.categories) & wanted):
                continue
            if not supports_language(engine, language):
                continue
            selected.append(engine)
        return selected


@dataclass
class EngineOutcome:
    engine_name: str
    issues: list[Issue] = field(default_factory=list)
    error: EngineExecutionError | None = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class DispatchOutcome:
    issues: list[Issue] = field(default_factory=list)
    per_engine: dict[str, EngineOutcome] = field(default_factory=dict)

    @property
    def engines_invoked(self) -> int:
        return len(self.per_engine)

    @property
    def failed_engines(self) -> list[str]:
        return [name for name, outcome in self.per_engine.items() if not outcome.succeeded]

    @property
    def per_engine_issue_counts(self) -> dict[str, int]:
        return {name: len(outcome.issues) for name, outcome in self.per_engine.items()}


class Dispatcher:
    def __init__(
        self,
        registry: EngineRegistry,
        *,
        normalizer: IssueNormalizer | None = None,
        observer: HealthObserver | None = None,
        min_text_length: int = 3,
    ) -> None:
        self.registry = registry
        self.normalizer = normalizer or IssueNormalizer()
        self.observer = observer
        self.min_text_length = min_text_length

    async def dispatch(
        self,
        text: str,
        requested_categories: Iterable[IssueCategory] | None = None,
        *,
        disabled: Iterable[str] = (),
        language: str | None = None,
    ) -> DispatchOutcome:
        if len(text.strip()) < self.min_text_length:
            return DispatchOutcome()

        engines = self.registry.select(requested_categories, disabled=disabled, language=language)
        if not engines:
            LOGGER.debug("No engines selected for this check")
            return DispatchOutcome()

        results = await asyncio.gather(
            *(self._run(engine, text) for engine in engines), return_exceptions=True
        )

        folded = [self._fold(engine, result, text) for engine, result in zip(engines, results)]

        # Report every outcome before merging so that health reflects the whole join
        if self.observer is not None:
            for engine_outcome in folded:
                if engine_outcome.error is None:
                    self.observer.record_success(engine_outcome.engine_name)
                else:
                    self.observer.record_failure(engine_outcome.engine_name, engine_outcome.error.cause)

        outcome = DispatchOutcome()
        for engine_outcome in folded:
            outcome.per_engine[engine_outcome.engine_name] = engine_outcome
            outcome.issues.extend(engine_outcome.issues)
        return outcome

    async def _run(self, engine: CheckerEngine, text: str) -> tuple[Sequence[Any], float]:
        started = time.perf_counter()
        raw = await engine.check(text)
        return raw, (time.perf_counter() - started) * 1000

    def _fold(self, engine: CheckerEngine, result: Any, text: str) -> EngineOutcome:
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            LOGGER.warning("Engine '%s' failed: %s: %s", engine.name, type(result).__name__, result)
            return EngineOutcome(engine.name, error=EngineExecutionError(engine.name, result))

        raw, duration_ms = result
        try:
            issues = self.normalizer.normalize_all(
                engine.name, raw, text, default_category=_default_category(engine)
            )
        except NormalizationError as exc:
            LOGGER.warning("Engine '%s' returned malformed results: %s", engine.name, exc)
            return EngineOutcome(
                engine.name, error=EngineExecutionError(engine.name, exc), duration_ms=duration_ms
            )
        return EngineOutcome(engine.name, issues=issues, duration_ms=duration_ms)


def _default_category(engine: CheckerEngine) -> IssueCategory:
    categories = sorted(engine.categories, key=lambda c: IssueCategory.all_values().index(c.value))
    return categories[0] if categories else IssueCategory.GRAMMAR
