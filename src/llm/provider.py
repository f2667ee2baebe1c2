from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

ProviderReporter = Callable[[str, "ProviderStatus", Exception | None], None]


class ProviderStatus(str, Enum):
    """Status used when reporting the outcome of a provider call."""

    SUCCESS = "success"
    QUOTA = "quota"
    FAILURE = "failure"


class LLMProviderError(Exception):
    """Generic failure raised by an LLM provider."""


class LLMQuotaError(LLMProviderError):
    """Raised when a provider reports quota or rate-limit exhaustion."""


class LLMProviderConfigurationError(LLMProviderError):
    """Raised when a provider cannot be configured or authenticated."""


class LLMParseError(LLMProviderError):
    """Raised when an LLM response cannot be parsed as expected.

    Carries the raw response text and the prompts so the failure can be
    diagnosed from the log alone.
    """

    def __init__(
        self,
        message: str,
        *,
        response_text: str | None = None,
        prompts: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.response_text = response_text
        self.prompts = prompts

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.response_text is not None:
            parts.append(f"\n--- LLM Response ---\n{_truncate(self.response_text)}")
        if self.prompts:
            parts.append(f"\n--- Input Prompts ---\n{_truncate(chr(10).join(self.prompts))}")
        return "".join(parts)


def _truncate(text: str, limit: int = 2000) -> str:
    return text if len(text) <= limit else text[:limit] + "... [truncated]"


def load_system_prompt(system_prompt: str | Path) -> str:
    """Return prompt text from either a literal string or a file path."""

    if isinstance(system_prompt, Path):
        return system_prompt.read_text(encoding="utf-8")
    if not isinstance(system_prompt, str):
        raise TypeError(f"system_prompt must be str or Path, got {type(system_prompt)}")
    # Short single-line strings may name a prompt file
    if "\n" not in system_prompt and len(system_prompt) < 500:
        try:
            candidate = Path(system_prompt)
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8")
        except (OSError, ValueError):
            pass
    return system_prompt


class LLMProvider(Protocol):
    """Shared contract for LLM providers."""

    name: str

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        filter_json: bool = False,
    ) -> Any:
        """Produce a single response for the provided prompts."""
        ...

    def health_check(self) -> bool:
        """Quick check that returns True when the provider is ready."""
        ...


class ProviderFactory(Protocol):
    def __call__(
        self,
        *,
        system_prompt: str | Path,
        filter_json: bool,
        dotenv_path: str | Path | None,
    ) -> LLMProvider: ...
