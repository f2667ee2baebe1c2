"""Exception taxonomy for the checking core.

Only :class:`NormalizationError` and :class:`CheckTimeoutError` are meant to
reach callers of ``GrammarChecker.check``; the others are caught and turned
into degraded results or health records.
"""

from __future__ import annotations


class GrammarCheckError(Exception):
    """Base class for all checking-core failures."""


class ModuleLoadError(GrammarCheckError):
    """Raised when every loading strategy for the analysis module failed.

    ``errors`` maps each attempted strategy name to the exception it raised,
    in the order the strategies were tried.
    """

    def __init__(self, message: str, *, errors: dict[str, BaseException] | None = None) -> None:
        super().__init__(message)
        self.errors: dict[str, BaseException] = dict(errors or {})

    @property
    def strategies(self) -> list[str]:
        return list(self.errors)

    def __str__(self) -> str:
        parts = [super().__str__()]
        for name, exc in self.errors.items():
            parts.append(f"{name}: {type(exc).__name__}: {exc}")
        return "; ".join(parts)


class EngineExecutionError(GrammarCheckError):
    """A single engine raised while checking text."""

    def __init__(self, engine_name: str, cause: BaseException) -> None:
        super().__init__(f"Engine '{engine_name}' failed: {type(cause).__name__}: {cause}")
        self.engine_name = engine_name
        self.cause = cause


class CacheError(GrammarCheckError):
    """Non-fatal cache failure; callers fall back to a live dispatch."""


class ValidationError(GrammarCheckError):
    """Input text is not a string or is too short to check."""


class NormalizationError(GrammarCheckError):
    """An engine produced a result shape the normalizer cannot interpret."""

    def __init__(self, message: str, *, engine_name: str | None = None, raw: object = None) -> None:
        super().__init__(message)
        self.engine_name = engine_name
        self.raw = raw

    def __str__(self) -> str:
        text = super().__str__()
        if self.engine_name:
            text = f"[{self.engine_name}] {text}"
        if self.raw is not None:
            raw_text = repr(self.raw)
            if len(raw_text) > 300:
                raw_text = raw_text[:300] + "... [truncated]"
            text += f"\n--- Raw result ---\n{raw_text}"
        return text


class SelfTestError(GrammarCheckError):
    """A freshly loaded module did not detect the fixture sentence's error."""


class CheckTimeoutError(GrammarCheckError):
    """The aggregate dispatch did not settle within the caller's deadline."""
