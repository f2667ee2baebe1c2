from __future__ import annotations

import asyncio
import sys
import threading
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import src.grammar_check.module_loader as module_loader
from src.grammar_check.config import CheckerConfig
from src.grammar_check.errors import ModuleLoadError
from src.grammar_check.module_loader import (
    AnalysisModule,
    LocalServerStrategy,
    PublicApiStrategy,
    ReliableModuleLoader,
    RemoteServerStrategy,
    build_strategies,
)
from src.models import LoadState


class DummyMatch:
    def __init__(self, offset: int = 4, length: int = 7, message: str = "Agreement") -> None:
        self.offset = offset
        self.errorLength = length
        self.message = message


class DummyTool:
    def __init__(self, matches: list | None = None, *, raises: Exception | None = None) -> None:
        self._matches = [DummyMatch()] if matches is None else matches
        self._raises = raises
        self.closed = False
        self.checked: list[str] = []

    def check(self, text: str) -> list:
        self.checked.append(text)
        if self._raises is not None:
            raise self._raises
        return self._matches

    def close(self) -> None:
        self.closed = True


class DummyStrategy:
    def __init__(self, name: str, tool: DummyTool | None = None, *, error: Exception | None = None) -> None:
        self.name = name
        self._tool = tool
        self._error = error
        self.calls = 0

    def load(self) -> DummyTool:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._tool is not None
        return self._tool


class GatedStrategy(DummyStrategy):
    """Blocks inside ``load`` until the test releases it."""

    def __init__(self, name: str, tool: DummyTool) -> None:
        super().__init__(name, tool)
        self.entered = threading.Event()
        self.release = threading.Event()

    def load(self) -> DummyTool:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().load()


@pytest.mark.asyncio
async def test_load_uses_first_working_strategy() -> None:
    tool = DummyTool()
    loader = ReliableModuleLoader([DummyStrategy("local", tool), DummyStrategy("remote", DummyTool())])

    module = await loader.load()

    assert module.tool is tool
    assert module.strategy == "local"
    assert loader.state is LoadState.LOADED
    status = loader.status()
    assert status.strategy == "local"
    assert status.attempted == ["local"]
    assert tool.checked == ["The cats is hungry."]


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_attempt() -> None:
    strategy = GatedStrategy("local", DummyTool())
    loader = ReliableModuleLoader([strategy])

    first = asyncio.create_task(loader.load())
    await asyncio.to_thread(strategy.entered.wait, 5)
    assert loader.state is LoadState.LOADING
    others = [asyncio.create_task(loader.load()) for _ in range(4)]
    await asyncio.sleep(0)
    strategy.release.set()

    modules = await asyncio.gather(first, *others)

    assert strategy.calls == 1
    assert all(module is modules[0] for module in modules)
    assert loader.status().attempts == 1


@pytest.mark.asyncio
async def test_all_strategies_fail_then_failed_state_is_sticky() -> None:
    strategies = [
        DummyStrategy("local", error=OSError("java not found")),
        DummyStrategy("remote", error=ConnectionError("refused")),
        DummyStrategy("public_api", error=TimeoutError("slow")),
    ]
    loader = ReliableModuleLoader(strategies)

    with pytest.raises(ModuleLoadError) as excinfo:
        await loader.load()

    assert excinfo.value.strategies == ["local", "remote", "public_api"]
    assert "java not found" in str(excinfo.value)
    assert loader.state is LoadState.FAILED
    assert [a.strategy for a in loader.attempt_log] == ["local", "remote", "public_api"]
    assert not any(a.succeeded for a in loader.attempt_log)

    # No new attempt until reset
    with pytest.raises(ModuleLoadError):
        await loader.load()
    assert [s.calls for s in strategies] == [1, 1, 1]


@pytest.mark.asyncio
async def test_fallback_scenario_skips_failing_strategies() -> None:
    public_tool = DummyTool()
    loader = ReliableModuleLoader(
        [
            DummyStrategy("local", error=OSError("no jar")),
            DummyStrategy("remote", error=ConnectionError("down")),
            DummyStrategy("public_api", public_tool),
        ]
    )

    module = await loader.load()

    assert module.strategy == "public_api"
    assert loader.status().attempted == ["local", "remote", "public_api"]
    assert loader.attempt_log[-1].succeeded is True


@pytest.mark.asyncio
async def test_self_test_warn_policy_keeps_module() -> None:
    tool = DummyTool(matches=[])
    loader = ReliableModuleLoader([DummyStrategy("local", tool)], self_test_policy="warn")

    module = await loader.load()

    assert module.tool is tool
    assert loader.attempt_log[0].self_test_passed is False
    assert loader.state is LoadState.LOADED


@pytest.mark.asyncio
async def test_self_test_fail_policy_moves_to_next_strategy() -> None:
    silent = DummyTool(matches=[])
    working = DummyTool()
    loader = ReliableModuleLoader(
        [DummyStrategy("local", silent), DummyStrategy("remote", working)],
        self_test_policy="fail",
    )

    module = await loader.load()

    assert module.tool is working
    assert silent.closed is True
    first = loader.attempt_log[0]
    assert first.strategy == "local"
    assert first.succeeded is False
    assert first.self_test_passed is False
    assert "SelfTestError" in (first.error or "")


@pytest.mark.asyncio
async def test_self_test_rejects_malformed_matches() -> None:
    malformed = DummyTool(matches=[DummyMatch(offset=-1)])
    loader = ReliableModuleLoader([DummyStrategy("local", malformed)], self_test_policy="fail")

    with pytest.raises(ModuleLoadError):
        await loader.load()


@pytest.mark.asyncio
async def test_reset_closes_module_and_allows_reload() -> None:
    tool = DummyTool()
    strategy = DummyStrategy("local", tool)
    loader = ReliableModuleLoader([strategy])
    module = await loader.load()

    loader.reset()

    assert module.closed is True
    assert tool.closed is True
    assert loader.state is LoadState.IDLE
    await loader.load()
    assert strategy.calls == 2


@pytest.mark.asyncio
async def test_no_strategies_is_a_load_error() -> None:
    loader = ReliableModuleLoader([])
    with pytest.raises(ModuleLoadError, match="No loading strategies"):
        await loader.load()


def test_unknown_self_test_policy_rejected() -> None:
    with pytest.raises(ValueError):
        ReliableModuleLoader([], self_test_policy="ignore")


def test_session_released_when_check_raises() -> None:
    module = AnalysisModule(DummyTool(raises=RuntimeError("native crash")), strategy="local")

    with pytest.raises(RuntimeError, match="native crash"):
        with module.session() as session:
            assert module.active_sessions == 1
            session.check("text")

    assert session.released is True
    assert module.active_sessions == 0
    with pytest.raises(RuntimeError, match="after release"):
        session.check("text")


def test_sessions_are_fresh_per_use() -> None:
    module = AnalysisModule(DummyTool(), strategy="local")
    with module.session() as first:
        pass
    with module.session() as second:
        pass
    assert first.session_id != second.session_id


def test_closed_module_refuses_sessions() -> None:
    module = AnalysisModule(DummyTool(), strategy="local")
    module.close()
    with pytest.raises(RuntimeError):
        with module.session():
            pass


class DummyManager:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def build_local_tool(self, language: str) -> str:
        self.calls.append(("local", language))
        return "local-tool"

    def build_remote_tool(self, language: str, remote_server: str) -> str:
        self.calls.append(("remote", language, remote_server))
        return "remote-tool"

    def build_public_api_tool(self, language: str) -> str:
        self.calls.append(("public_api", language))
        return "public-tool"


class DummyResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise module_loader.requests.HTTPError(f"status {self.status_code}")


def test_remote_strategy_probes_before_building(monkeypatch: pytest.MonkeyPatch) -> None:
    probed: list[tuple[str, float]] = []

    def fake_get(url: str, timeout: float) -> DummyResponse:
        probed.append((url, timeout))
        return DummyResponse()

    monkeypatch.setattr(module_loader.requests, "get", fake_get)
    manager = DummyManager()
    strategy = RemoteServerStrategy(manager, "en-GB", "http://lt.local:8081/", probe_timeout=2.0)

    assert strategy.load() == "remote-tool"
    assert probed == [("http://lt.local:8081/v2/languages", 2.0)]
    assert manager.calls == [("remote", "en-GB", "http://lt.local:8081")]


def test_remote_strategy_unreachable_server(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(module_loader.requests, "get", lambda url, timeout: DummyResponse(503))
    manager = DummyManager()
    strategy = RemoteServerStrategy(manager, "en-GB", "http://lt.local")

    with pytest.raises(module_loader.requests.HTTPError):
        strategy.load()
    assert manager.calls == []


def test_remote_strategy_without_url() -> None:
    with pytest.raises(ValueError):
        RemoteServerStrategy(DummyManager(), "en-GB", None).load()


def test_build_strategies_follows_config_order() -> None:
    config = CheckerConfig(load_strategies=("public_api", "local", "public_api"))
    strategies = build_strategies(config, DummyManager())

    assert [type(s) for s in strategies] == [PublicApiStrategy, LocalServerStrategy]


def test_build_strategies_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown loading strategy"):
        build_strategies(CheckerConfig(load_strategies=("local", "docker")), DummyManager())
