"""LanguageTool setup helpers.

This module centralises LanguageTool instantiation so that dictionary
updates (custom spellings), disabled rules and server configuration stay in
one place. The loader strategies call into it for the local server, a
remote server and the public API variants.
"""

from __future__ import annotations

from typing import Any, Iterable
import logging

import language_tool_python

# Default LanguageTool server configuration.
#
# maxCheckTimeMillis defaults to a low value which makes the Java server
# abort checks on long notes; raise it so long inputs finish.
_DEFAULT_CONFIG = {
    "requestLimitPeriodInSeconds": 60,
    "maxCheckTimeMillis": 60000,
}


class LanguageToolManager:
    """Factory class responsible for configuring LanguageTool instances."""

    def __init__(
        self,
        *,
        ignored_words: Iterable[str] | None = None,
        disabled_rules: Iterable[str] | None = None,
        config: dict[str, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.config = dict(config) if config is not None else dict(_DEFAULT_CONFIG)
        self.disabled_rules = set(disabled_rules or [])
        self._ignored_words = self._prepare_ignored_words(ignored_words)

    @staticmethod
    def _prepare_ignored_words(words: Iterable[str] | None) -> tuple[str, ...]:
        if not words:
            return tuple()
        deduped: set[str] = set()
        for word in words:
            if word is None:
                continue
            cleaned = word.strip()
            if cleaned:
                deduped.add(cleaned)
        return tuple(sorted(deduped))

    @property
    def ignored_words(self) -> tuple[str, ...]:
        return self._ignored_words

    def build_local_tool(self, language: str) -> Any:
        """Start (or reuse the cached download of) a local LanguageTool server."""

        kwargs: dict[str, Any] = {}
        if self.config:
            kwargs["config"] = self.config
        if self._ignored_words:
            self.logger.info(
                "Registering %d custom spellings with LanguageTool",
                len(self._ignored_words),
            )
            kwargs["newSpellings"] = list(self._ignored_words)
            kwargs["new_spellings_persist"] = False
        tool = language_tool_python.LanguageTool(language, **kwargs)
        return self._configure(tool)

    def build_remote_tool(self, language: str, remote_server: str) -> Any:
        """Connect to an already running LanguageTool server."""

        tool = language_tool_python.LanguageTool(language, remote_server=remote_server)
        return self._configure(tool)

    def build_public_api_tool(self, language: str) -> Any:
        """Use the rate-limited public LanguageTool HTTP API."""

        tool = language_tool_python.LanguageToolPublicAPI(language)
        return self._configure(tool)

    def _configure(self, tool: Any) -> Any:
        if self.disabled_rules:
            tool.disabled_rules = set(self.disabled_rules)
        return tool
