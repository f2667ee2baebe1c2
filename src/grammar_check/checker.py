"""Public checking API.

:class:`GrammarChecker` ties the dispatcher, cache, health monitor, module
loader and feedback loop together. :func:`build_default_checker` wires the
standard engine set from a :class:`CheckerConfig`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Mapping

from src.feedback import FeedbackEvent, FeedbackLoop, FeedbackReceipt, FeedbackStore
from src.llm.service import LLMService
from src.models import CheckOptions, CheckResult, CheckStatistics, HealthReport

from .cache import TwoTierCache, make_key, text_fingerprint
from .config import CheckerConfig
from .dispatcher import DispatchOutcome, Dispatcher, EngineRegistry
from .engines import (
    LanguageToolEngine,
    LearnedRulesEngine,
    LLMProofreadEngine,
    PatternGrammarEngine,
    SpellingEngine,
    StyleEngine,
)
from .errors import CacheError, CheckTimeoutError, GrammarCheckError, ValidationError
from .health import EngineHealthMonitor
from .language_check_config import DEFAULT_DISABLED_RULES, DEFAULT_IGNORED_WORDS
from .language_tool_manager import LanguageToolManager
from .module_loader import ReliableModuleLoader, build_strategies
from .normalizer import deduplicate, sort_issues

LOGGER = logging.getLogger(__name__)


class GrammarChecker:
    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        config: CheckerConfig | None = None,
        cache: TwoTierCache[CheckResult] | None = None,
        health: EngineHealthMonitor | None = None,
        loader: ReliableModuleLoader | None = None,
        feedback: FeedbackLoop | None = None,
        llm_service: LLMService | None = None,
    ) -> None:
        self.config = config or CheckerConfig()
        self.dispatcher = dispatcher
        self.cache = cache
        self.health = health or EngineHealthMonitor(
            failure_limit=self.config.failure_limit,
            degraded_rate=self.config.degraded_rate,
            critical_engines=self.config.critical_engines,
        )
        if dispatcher.observer is None:
            dispatcher.observer = self.health
        for name in dispatcher.registry.names():
            self.health.register(name)
        self.loader = loader
        self.feedback = feedback
        self.llm_service = llm_service

        self._checks = 0
        self._cache_hits = 0
        self._timeouts = 0
        self._total_processing_ms = 0.0

    @property
    def registry(self) -> EngineRegistry:
        return self.dispatcher.registry

    async def check(
        self,
        text: str,
        options: CheckOptions | Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> CheckResult:
        """Check ``text`` with every applicable engine.

        Engine and loader failures degrade the result instead of raising.
        Raises :class:`CheckTimeoutError` when ``timeout`` elapses first; the
        engines keep running and their late result is discarded.
        """

        try:
            self._validate(text)
        except ValidationError as exc:
            LOGGER.debug("Skipping check: %s", exc)
            return CheckResult.empty(len(text) if isinstance(text, str) else 0)

        opts = options if isinstance(options, CheckOptions) else CheckOptions.model_validate(options or {})
        effective = opts.effective(self.config.language)
        self._checks += 1

        key: str | None = None
        if self.cache is not None:
            try:
                key = make_key(text, effective)
            except CacheError as exc:
                LOGGER.warning("Result cache unavailable for this check: %s", exc)
            else:
                cached = self.cache.get(key, fingerprint=text_fingerprint(text))
                if cached is not None:
                    self._cache_hits += 1
                    return cached.as_cache_hit()

        task = asyncio.get_running_loop().create_task(self._run(text, opts, effective["language"]))
        if timeout is None:
            result = await task
        else:
            try:
                result = await asyncio.wait_for(asyncio.shield(task), timeout)
            except asyncio.TimeoutError:
                self._timeouts += 1
                task.add_done_callback(_discard_late_result)
                raise CheckTimeoutError(f"check did not finish within {timeout:.3f}s") from None

        if key is not None and self.cache is not None and not result.statistics.failed_engines:
            self.cache.set(key, result, fingerprint=text_fingerprint(text))
        return result

    def _validate(self, text: Any) -> None:
        if not isinstance(text, str):
            raise ValidationError(f"text must be a string, got {type(text).__name__}")
        if len(text.strip()) < self.config.min_text_length:
            raise ValidationError(
                f"text shorter than {self.config.min_text_length} character(s)"
            )

    async def _run(self, text: str, options: CheckOptions, language: str) -> CheckResult:
        started = time.perf_counter()
        disabled = [name for name, enabled in options.engines.items() if not enabled]
        outcome = await self.dispatcher.dispatch(
            text,
            options.categories,
            disabled=disabled,
            language=language,
        )

        issues = outcome.issues
        if self.feedback is not None:
            issues = self.feedback.adjust(issues, text)
        if options.categories is not None:
            wanted = set(options.categories)
            issues = [issue for issue in issues if issue.category in wanted]
        # Category filter runs before dedup: unrequested issues never win an overlap
        issues = deduplicate(issues)
        if not options.strict_mode:
            issues = [i for i in issues if i.confidence >= self.config.relaxed_min_confidence]
        issues = sort_issues(issues)

        self._log_failures(outcome)
        elapsed_ms = (time.perf_counter() - started) * 1000
        self._total_processing_ms += elapsed_ms
        return CheckResult(
            issues=issues,
            statistics=CheckStatistics(
                processing_time_ms=elapsed_ms,
                per_engine_issue_counts=outcome.per_engine_issue_counts,
                text_length=len(text),
                engines_invoked=outcome.engines_invoked,
                failed_engines=outcome.failed_engines,
            ),
        )

    @staticmethod
    def _log_failures(outcome: DispatchOutcome) -> None:
        failed = outcome.failed_engines
        if not failed:
            return
        if len(failed) == outcome.engines_invoked:
            LOGGER.error("All %d engine(s) failed; returning an empty result", len(failed))
        else:
            LOGGER.warning("Partial result: engine(s) %s failed", ", ".join(failed))

    def get_health_report(self) -> HealthReport:
        return self.health.report()

    def get_stats(self) -> dict[str, Any]:
        live_checks = self._checks - self._cache_hits
        return {
            "checks": self._checks,
            "cache_hits": self._cache_hits,
            "timeouts": self._timeouts,
            "average_processing_ms": (
                self._total_processing_ms / live_checks if live_checks > 0 else 0.0
            ),
            "engines": self.registry.names(),
            "cache": self.cache.stats() if self.cache is not None else None,
        }

    def get_system_status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "engines": self.registry.names(),
            "health": self.health.report().model_dump(mode="json"),
            "stats": self.get_stats(),
            "module": None,
            "feedback": self.feedback.status() if self.feedback is not None else None,
            "llm": None,
        }
        if self.llm_service is not None:
            status["llm"] = {
                "providers": self.llm_service.provider_order(),
                "available": dict(self.llm_service.health_check()),
            }
        if self.loader is not None:
            module = self.loader.status().model_dump(mode="json")
            module["strategy_attempts"] = [
                {
                    "strategy": a.strategy,
                    "succeeded": a.succeeded,
                    "duration_ms": round(a.duration_ms, 1),
                    "error": a.error,
                    "self_test_passed": a.self_test_passed,
                }
                for a in self.loader.attempt_log
            ]
            status["module"] = module
        return status

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()
            LOGGER.info("Result cache cleared")

    def reset_health_monitoring(self) -> None:
        self.health.reset()

    def reinitialize_module(self) -> None:
        """Drop the loaded analysis module so the next check loads it afresh."""

        if self.loader is not None:
            self.loader.reset()

    async def process_feedback(self, event: FeedbackEvent | Mapping[str, Any]) -> FeedbackReceipt:
        if self.feedback is None:
            raise GrammarCheckError("feedback processing is disabled")
        if not isinstance(event, FeedbackEvent):
            event = FeedbackEvent.model_validate(event)
        return await self.feedback.process_feedback(event)

    async def aclose(self) -> None:
        if self.loader is not None:
            self.loader.reset()
        if self.feedback is not None:
            await self.feedback.aclose()


def _discard_late_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Late check result discarded after timeout: %s", exc)
    else:
        LOGGER.debug("Late check result discarded after timeout")


def build_default_checker(
    config: CheckerConfig | None = None,
    *,
    llm_service: LLMService | None = None,
) -> GrammarChecker:
    """Wire the standard engine set from ``config`` (defaults from the environment)."""

    config = config or CheckerConfig.from_env()

    manager = LanguageToolManager(
        ignored_words=DEFAULT_IGNORED_WORDS,
        disabled_rules=DEFAULT_DISABLED_RULES,
        logger=LOGGER,
    )
    loader = ReliableModuleLoader(
        build_strategies(config, manager),
        self_test_policy=config.self_test_policy,
    )

    registry = EngineRegistry()
    registry.register(
        LanguageToolEngine(
            loader,
            language=config.language,
            ignored_words=set(manager.ignored_words),
            max_retries=config.engine_max_retries,
            retry_base_delay=config.engine_retry_base_delay,
        )
    )
    registry.register(PatternGrammarEngine())
    registry.register(SpellingEngine(ignored_words=manager.ignored_words))
    registry.register(StyleEngine())

    feedback: FeedbackLoop | None = None
    if config.feedback_enabled:
        feedback = FeedbackLoop(store=FeedbackStore(path=config.feedback_log_path))
        registry.register(LearnedRulesEngine(feedback.rollout))

    if config.llm_enabled:
        if llm_service is None:
            llm_service = _build_llm_service()
        registry.register(LLMProofreadEngine(llm_service, language=config.language))

    health = EngineHealthMonitor(
        failure_limit=config.failure_limit,
        degraded_rate=config.degraded_rate,
        critical_engines=config.critical_engines,
    )
    cache: TwoTierCache[CheckResult] | None = None
    if config.cache_enabled:
        cache = TwoTierCache(
            ttl_seconds=config.cache_ttl_seconds,
            fast_capacity=config.cache_fast_capacity,
            slow_capacity=config.cache_slow_capacity,
            promote_threshold=config.cache_promote_threshold,
        )

    dispatcher = Dispatcher(registry, observer=health, min_text_length=config.min_text_length)
    LOGGER.info("Checker ready with engines: %s", ", ".join(registry.names()))
    return GrammarChecker(
        dispatcher,
        config=config,
        cache=cache,
        health=health,
        loader=loader,
        feedback=feedback,
        llm_service=llm_service if config.llm_enabled else None,
    )


def _build_llm_service() -> LLMService:
    from src.llm.provider_registry import create_provider_chain
    from src.prompt.render_prompt import render_system_prompt

    providers = create_provider_chain(system_prompt=render_system_prompt(), filter_json=True)
    return LLMService(providers, reporter=_report_provider)


def _report_provider(name: str, status: Any, error: Exception | None) -> None:
    if error is None:
        LOGGER.debug("LLM provider %s: %s", name, status.value)
    else:
        LOGGER.warning("LLM provider %s: %s (%s)", name, status.value, error)
