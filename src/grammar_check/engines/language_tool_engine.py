"""LanguageTool grammar engine.

Runs each check on a worker thread through a scoped session of the loaded
analysis module. Transient connection errors from the LanguageTool server
are retried with exponential backoff; anything else propagates to the
dispatcher, which records it against this engine's health.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from language_tool_python.utils import LanguageToolError

from src.models import IssueCategory

from ..language_check_config import DEFAULT_IGNORED_WORDS, SPELLING_RULE_PREFIXES
from ..module_loader import ReliableModuleLoader

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# Transient errors that should trigger a retry
TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    OSError,  # Covers socket.error and other OS-level issues
)

# language_tool_python wraps connection-level errors in LanguageToolError,
# so treat that as transient too.
TRANSIENT_ERRORS = TRANSIENT_ERRORS + (LanguageToolError,)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``func()`` with exponential backoff on transient errors.

    Args:
            func: Zero-argument coroutine factory (called once per attempt)
            max_retries: Maximum number of retry attempts (total attempts = max_retries + 1)
            base_delay: Initial delay in seconds
            max_delay: Maximum delay in seconds
            sleep: Awaitable sleep, replaceable in tests

    Raises:
            The last exception if all retries fail
    """

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_retries:
                LOGGER.error(
                    "Language check failed after %d attempt(s): %s",
                    attempt + 1,
                    exc,
                )
                raise

            delay = base_delay * (2**attempt)
            # Add a small random jitter to avoid a thundering herd
            jitter = random.uniform(0.75, 1.25)
            delay = min(delay * jitter, max_delay)

            LOGGER.warning(
                "Language check attempt %d failed (transient error: %s); "
                "retrying in %.1f second(s)...",
                attempt + 1,
                type(exc).__name__,
                delay,
            )
            await sleep(delay)

    raise RuntimeError("Retry logic completed without returning or raising")


def filter_matches(matches: list[Any], words_to_ignore: set[str]) -> list[Any]:
    """Drop spelling-rule matches and matches on ignored tokens."""

    filtered_matches: list[Any] = []
    for match in matches:
        rule_id = str(getattr(match, "ruleId", "") or "")
        if rule_id.startswith(SPELLING_RULE_PREFIXES):
            continue
        if words_to_ignore and hasattr(match, "matchedText"):
            original_text = str(getattr(match, "matchedText", "")).strip()
            if original_text:
                letters = "".join(ch for ch in original_text if ch.isalpha())
                is_acronym_form = bool(letters) and (
                    letters.isupper() or letters.rstrip("s").isupper()
                )
                if is_acronym_form:
                    if (
                        letters in words_to_ignore
                        or letters.rstrip("s") in words_to_ignore
                    ):
                        continue
                elif original_text in words_to_ignore:
                    continue
        filtered_matches.append(match)

    return filtered_matches


class LanguageToolEngine:
    name = "languagetool"
    family = "grammar"
    categories = frozenset({IssueCategory.GRAMMAR, IssueCategory.PUNCTUATION})

    def __init__(
        self,
        loader: ReliableModuleLoader,
        *,
        language: str = "en-GB",
        ignored_words: set[str] | None = None,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._loader = loader
        self.languages = (language,)
        self._ignored_words = (
            set(ignored_words) if ignored_words is not None else set(DEFAULT_IGNORED_WORDS)
        )
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    @property
    def loader(self) -> ReliableModuleLoader:
        return self._loader

    async def check(self, text: str) -> list[Any]:
        module = await self._loader.load()

        def _run() -> list[Any]:
            with module.session() as session:
                return session.check(text)

        matches = await retry_with_backoff(
            lambda: asyncio.to_thread(_run),
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
        )
        return filter_matches(matches, self._ignored_words)
