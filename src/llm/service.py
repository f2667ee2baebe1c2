from __future__ import annotations

from typing import Any, Sequence

from .provider import (
    LLMProvider,
    LLMProviderError,
    LLMQuotaError,
    ProviderReporter,
    ProviderStatus,
)


class LLMService:
    """Routes requests across a priority-ordered provider list.

    A provider that reports quota exhaustion is skipped in favour of the next
    one; any other provider error is reported and re-raised.
    """

    def __init__(
        self,
        providers: Sequence[LLMProvider],
        *,
        reporter: ProviderReporter | None = None,
    ) -> None:
        if not providers:
            raise ValueError("LLMService needs at least one provider")
        self._providers = list(providers)
        self._reporter = reporter

    def provider_order(self) -> list[str]:
        return [provider.name for provider in self._providers]

    def health_check(self) -> list[tuple[str, bool]]:
        return [(provider.name, provider.health_check()) for provider in self._providers]

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        filter_json: bool = False,
    ) -> Any:
        last_error: LLMQuotaError | None = None
        for provider in self._providers:
            try:
                value = provider.generate(user_prompts, filter_json=filter_json)
            except LLMQuotaError as exc:
                last_error = exc
                self._report(provider.name, ProviderStatus.QUOTA, exc)
                continue
            except LLMProviderError as exc:
                self._report(provider.name, ProviderStatus.FAILURE, exc)
                raise
            self._report(provider.name, ProviderStatus.SUCCESS)
            return value
        raise LLMQuotaError("All providers exceeded quota") from last_error

    def _report(
        self,
        provider_name: str,
        status: ProviderStatus,
        error: Exception | None = None,
    ) -> None:
        if self._reporter is not None:
            self._reporter(provider_name, status, error)
