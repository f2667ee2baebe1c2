"""Grammar check package exports.

Callers import the public API from ``src.grammar_check``::

    from src.grammar_check import build_default_checker

    checker = build_default_checker()
    result = await checker.check("The cats is hungry.")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .cache import TwoTierCache, make_key
    from .checker import GrammarChecker, build_default_checker
    from .config import CheckerConfig
    from .dispatcher import DispatchOutcome, Dispatcher, EngineRegistry
    from .errors import (
        CacheError,
        CheckTimeoutError,
        EngineExecutionError,
        GrammarCheckError,
        ModuleLoadError,
        NormalizationError,
        SelfTestError,
        ValidationError,
    )
    from .health import EngineHealthMonitor
    from .module_loader import ReliableModuleLoader, build_strategies
    from .normalizer import IssueNormalizer, deduplicate, sort_issues
    from .report_utils import build_report_csv, build_report_markdown

__all__ = [
    "CacheError",
    "CheckTimeoutError",
    "CheckerConfig",
    "DispatchOutcome",
    "Dispatcher",
    "EngineExecutionError",
    "EngineHealthMonitor",
    "EngineRegistry",
    "GrammarCheckError",
    "GrammarChecker",
    "IssueNormalizer",
    "ModuleLoadError",
    "NormalizationError",
    "ReliableModuleLoader",
    "SelfTestError",
    "TwoTierCache",
    "ValidationError",
    "build_default_checker",
    "build_report_csv",
    "build_report_markdown",
    "build_strategies",
    "deduplicate",
    "make_key",
    "sort_issues",
]

_LAZY_EXPORTS = {
    # attribute -> (module, attribute)
    "TwoTierCache": (".cache", "TwoTierCache"),
    "make_key": (".cache", "make_key"),
    "GrammarChecker": (".checker", "GrammarChecker"),
    "build_default_checker": (".checker", "build_default_checker"),
    "CheckerConfig": (".config", "CheckerConfig"),
    "DispatchOutcome": (".dispatcher", "DispatchOutcome"),
    "Dispatcher": (".dispatcher", "Dispatcher"),
    "EngineRegistry": (".dispatcher", "EngineRegistry"),
    "CacheError": (".errors", "CacheError"),
    "CheckTimeoutError": (".errors", "CheckTimeoutError"),
    "EngineExecutionError": (".errors", "EngineExecutionError"),
    "GrammarCheckError": (".errors", "GrammarCheckError"),
    "ModuleLoadError": (".errors", "ModuleLoadError"),
    "NormalizationError": (".errors", "NormalizationError"),
    "SelfTestError": (".errors", "SelfTestError"),
    "ValidationError": (".errors", "ValidationError"),
    "EngineHealthMonitor": (".health", "EngineHealthMonitor"),
    "ReliableModuleLoader": (".module_loader", "ReliableModuleLoader"),
    "build_strategies": (".module_loader", "build_strategies"),
    "IssueNormalizer": (".normalizer", "IssueNormalizer"),
    "deduplicate": (".normalizer", "deduplicate"),
    "sort_issues": (".normalizer", "sort_issues"),
    "build_report_csv": (".report_utils", "build_report_csv"),
    "build_report_markdown": (".report_utils", "build_report_markdown"),
}


def __getattr__(name: str):
    """Lazily import and return exported attributes.

    Submodules pull in language_tool_python and symspellpy, so nothing is
    imported until an attribute is actually used.
    """

    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        from importlib import import_module

        mod = import_module(f"src.grammar_check{module_name}")
        value = getattr(mod, attr)
        globals()[name] = value
        return value
    raise AttributeError(name)


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_LAZY_EXPORTS.keys()))
