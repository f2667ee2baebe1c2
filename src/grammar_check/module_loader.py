"""Reliable, single-flight loading of the LanguageTool analysis module.

The loader walks an ordered list of strategies (local server, remote server,
public API) until one produces a working tool. Concurrent ``load()`` callers
share one in-flight attempt. The loaded :class:`AnalysisModule` owns the
native resource (the Java server or HTTP client) and hands out short-lived
:class:`CheckerSession` handles that are always released, even when the
check raises.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Protocol, Sequence

import requests

from src.models import LoadState, ModuleLoadStatus

from .config import CheckerConfig
from .errors import ModuleLoadError, SelfTestError
from .language_check_config import SELF_TEST_SENTENCE
from .language_tool_manager import LanguageToolManager

LOGGER = logging.getLogger(__name__)


class LoadStrategy(Protocol):
    """One way of obtaining a LanguageTool-compatible tool."""

    name: str

    def load(self) -> Any:
        """Return an object exposing ``check(text)`` (and optionally ``close()``)."""
        ...


class LocalServerStrategy:
    name = "local"

    def __init__(self, manager: LanguageToolManager, language: str) -> None:
        self._manager = manager
        self._language = language

    def load(self) -> Any:
        return self._manager.build_local_tool(self._language)


class RemoteServerStrategy:
    name = "remote"

    def __init__(
        self,
        manager: LanguageToolManager,
        language: str,
        url: str | None,
        *,
        probe_timeout: float = 5.0,
    ) -> None:
        self._manager = manager
        self._language = language
        self._url = url.rstrip("/") if url else None
        self._probe_timeout = probe_timeout

    def load(self) -> Any:
        if not self._url:
            raise ValueError("no remote LanguageTool server configured")
        # Fail fast on an unreachable server instead of on the first check
        response = requests.get(f"{self._url}/v2/languages", timeout=self._probe_timeout)
        response.raise_for_status()
        return self._manager.build_remote_tool(self._language, self._url)


class PublicApiStrategy:
    name = "public_api"

    def __init__(self, manager: LanguageToolManager, language: str) -> None:
        self._manager = manager
        self._language = language

    def load(self) -> Any:
        return self._manager.build_public_api_tool(self._language)


def build_strategies(
    config: CheckerConfig, manager: LanguageToolManager
) -> list[LoadStrategy]:
    """Return the configured strategies in the order they should be tried."""

    factories = {
        "local": lambda: LocalServerStrategy(manager, config.language),
        "remote": lambda: RemoteServerStrategy(
            manager,
            config.language,
            config.remote_server_url,
            probe_timeout=config.remote_probe_timeout,
        ),
        "public_api": lambda: PublicApiStrategy(manager, config.language),
    }
    strategies: list[LoadStrategy] = []
    seen: set[str] = set()
    for name in config.load_strategies:
        if name in seen:
            continue
        seen.add(name)
        if name not in factories:
            raise ValueError(f"Unknown loading strategy '{name}'")
        strategies.append(factories[name]())
    return strategies


@dataclass(frozen=True)
class StrategyAttempt:
    """Structured record of one strategy attempt."""

    strategy: str
    succeeded: bool
    duration_ms: float
    error: str | None = None
    self_test_passed: bool | None = None


class CheckerSession:
    """Lightweight handle for one logical use of the analysis module."""

    def __init__(self, module: "AnalysisModule", session_id: int) -> None:
        self._module = module
        self.session_id = session_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def check(self, text: str) -> list[Any]:
        if self._released:
            raise RuntimeError(f"Checker session {self.session_id} used after release")
        return list(self._module.tool.check(text) or [])

    def release(self) -> None:
        self._released = True


class AnalysisModule:
    """Owner of the loaded tool and its native resources."""

    def __init__(self, tool: Any, *, strategy: str) -> None:
        self.tool = tool
        self.strategy = strategy
        self._closed = False
        self._active_sessions = 0
        self._session_ids = itertools.count(1)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_sessions(self) -> int:
        return self._active_sessions

    @contextmanager
    def session(self) -> Iterator[CheckerSession]:
        """Yield a fresh session and release it on every exit path."""

        if self._closed:
            raise RuntimeError("analysis module has been closed")
        session = CheckerSession(self, next(self._session_ids))
        self._active_sessions += 1
        try:
            yield session
        finally:
            session.release()
            self._active_sessions -= 1

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._active_sessions:
            LOGGER.warning(
                "Closing analysis module with %d active session(s)", self._active_sessions
            )
        if hasattr(self.tool, "close"):
            self.tool.close()


class ReliableModuleLoader:
    """Single-flight loader with ordered fallback strategies.

    ``self_test_policy`` decides what happens when a loaded module fails the
    fixture self-test: ``"warn"`` keeps the module, ``"fail"`` discards it and
    moves on to the next strategy.
    """

    def __init__(
        self,
        strategies: Sequence[LoadStrategy],
        *,
        self_test_policy: str = "warn",
        self_test_sentence: str = SELF_TEST_SENTENCE,
    ) -> None:
        if self_test_policy not in ("warn", "fail"):
            raise ValueError(f"Unknown self-test policy '{self_test_policy}'")
        self._strategies = list(strategies)
        self._self_test_policy = self_test_policy
        self._self_test_sentence = self_test_sentence

        self._state = LoadState.IDLE
        self._attempts = 0
        self._module: AnalysisModule | None = None
        self._error: ModuleLoadError | None = None
        self._inflight: asyncio.Task[AnalysisModule] | None = None
        self._generation = 0
        self._attempt_log: list[StrategyAttempt] = []

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    @property
    def attempt_log(self) -> list[StrategyAttempt]:
        return list(self._attempt_log)

    @property
    def last_error(self) -> ModuleLoadError | None:
        return self._error

    def status(self) -> ModuleLoadStatus:
        attempted: list[str] = []
        for record in self._attempt_log:
            if record.strategy not in attempted:
                attempted.append(record.strategy)
        return ModuleLoadStatus(
            state=self._state,
            attempts=self._attempts,
            last_error=str(self._error) if self._error is not None else None,
            strategy=self._module.strategy if self._module is not None else None,
            attempted=attempted,
        )

    async def load(self) -> AnalysisModule:
        """Return the loaded module, loading it on first use."""

        if self._module is not None:
            return self._module
        if self._inflight is not None:
            LOGGER.debug("Module load already in progress; joining it")
            return await asyncio.shield(self._inflight)
        if self._state is LoadState.FAILED and self._error is not None:
            raise self._error

        self._state = LoadState.LOADING
        self._attempts += 1
        self._attempt_log = []
        LOGGER.info("Loading analysis module (attempt %d)", self._attempts)
        self._inflight = asyncio.get_running_loop().create_task(
            self._run_load(self._generation)
        )
        return await asyncio.shield(self._inflight)

    async def _run_load(self, generation: int) -> AnalysisModule:
        try:
            module = await asyncio.to_thread(self._try_strategies)
        except ModuleLoadError as exc:
            if generation == self._generation:
                self._state = LoadState.FAILED
                self._error = exc
                self._inflight = None
            LOGGER.error("Analysis module failed to load: %s", exc)
            raise

        if generation != self._generation:
            module.close()
            raise ModuleLoadError("loader was reset while loading")

        self._module = module
        self._state = LoadState.LOADED
        self._inflight = None
        LOGGER.info("Analysis module loaded via '%s' strategy", module.strategy)
        return module

    def _try_strategies(self) -> AnalysisModule:
        if not self._strategies:
            raise ModuleLoadError("No loading strategies configured")

        errors: dict[str, BaseException] = {}
        for strategy in self._strategies:
            started = time.perf_counter()
            try:
                tool = strategy.load()
            except Exception as exc:
                LOGGER.warning("Loading strategy '%s' failed: %s", strategy.name, exc)
                errors[strategy.name] = exc
                self._record(strategy.name, started, error=exc)
                continue

            module = AnalysisModule(tool, strategy=strategy.name)
            problem = self._self_test(module)
            if problem is not None:
                if self._self_test_policy == "fail":
                    LOGGER.warning(
                        "Self-test failed for '%s' strategy (%s); trying next strategy",
                        strategy.name,
                        problem,
                    )
                    module.close()
                    error = SelfTestError(problem)
                    errors[strategy.name] = error
                    self._record(strategy.name, started, error=error, self_test_passed=False)
                    continue
                LOGGER.warning(
                    "Self-test failed for '%s' strategy (%s); keeping module",
                    strategy.name,
                    problem,
                )
            self._record(
                strategy.name, started, succeeded=True, self_test_passed=problem is None
            )
            return module

        raise ModuleLoadError(
            f"All {len(self._strategies)} loading strategies failed", errors=errors
        )

    def _self_test(self, module: AnalysisModule) -> str | None:
        """Return ``None`` when the fixture check looks healthy, else a reason."""

        try:
            with module.session() as session:
                matches = session.check(self._self_test_sentence)
        except Exception as exc:
            LOGGER.debug("Self-test raised", exc_info=True)
            return f"self-test raised {type(exc).__name__}: {exc}"
        if not matches:
            return "no issues detected in the fixture sentence"
        for match in matches:
            if not _is_well_shaped(match):
                return f"malformed match {match!r}"
        return None

    def _record(
        self,
        strategy: str,
        started: float,
        *,
        succeeded: bool = False,
        error: BaseException | None = None,
        self_test_passed: bool | None = None,
    ) -> None:
        self._attempt_log.append(
            StrategyAttempt(
                strategy=strategy,
                succeeded=succeeded,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=f"{type(error).__name__}: {error}" if error is not None else None,
                self_test_passed=self_test_passed,
            )
        )

    def reset(self) -> None:
        """Close any loaded module and return to ``idle``.

        A load still in flight finishes in the background and its module is
        discarded.
        """

        self._generation += 1
        if self._module is not None:
            self._module.close()
        self._module = None
        self._error = None
        self._inflight = None
        self._state = LoadState.IDLE
        self._attempt_log = []
        LOGGER.info("Module loader reset")


def _is_well_shaped(match: Any) -> bool:
    if isinstance(match, dict):
        getter = match.get
    else:
        def getter(name: str, default: Any = None) -> Any:
            return getattr(match, name, default)

    offset = getter("offset")
    length = getter("errorLength", getter("length"))
    message = getter("message")
    return (
        isinstance(offset, int)
        and isinstance(length, int)
        and offset >= 0
        and length >= 0
        and bool(str(message or "").strip())
    )
