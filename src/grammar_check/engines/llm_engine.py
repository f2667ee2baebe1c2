"""Optional proofreading engine backed by the LLM provider chain."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from src.llm.provider import LLMParseError
from src.models import IssueCategory
from src.prompt.render_prompt import render_user_prompt

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.6


class SupportsGenerate(Protocol):
    def generate(self, user_prompts: Sequence[str], *, filter_json: bool = False) -> Any: ...


class LLMProofreadEngine:
    name = "llm"
    family = "llm"
    categories = frozenset(
        {
            IssueCategory.GRAMMAR,
            IssueCategory.SPELLING,
            IssueCategory.STYLE,
            IssueCategory.PUNCTUATION,
            IssueCategory.CLARITY,
        }
    )

    def __init__(self, service: SupportsGenerate, *, language: str = "en-GB") -> None:
        self._service = service
        self.languages = (language,)
        self._language = language

    async def check(self, text: str) -> list[dict]:
        prompt = render_user_prompt({"language": self._language, "text": text})
        response = await asyncio.to_thread(self._service.generate, [prompt], filter_json=True)
        return self._locate(text, _issue_items(response))

    def _locate(self, text: str, items: list[dict]) -> list[dict]:
        """Attach offsets by finding each quoted span in the checked text."""

        findings: list[dict] = []
        search_from: dict[str, int] = {}
        for item in items:
            quoted = str(item.get("text") or item.get("issue") or "")
            message = str(item.get("message") or "").strip()
            if not quoted or not message:
                LOGGER.debug("Skipping LLM issue without text or message: %r", item)
                continue
            offset = text.find(quoted, search_from.get(quoted, 0))
            if offset < 0:
                LOGGER.debug("LLM issue text %r not found in input; skipping", quoted)
                continue
            search_from[quoted] = offset + len(quoted)
            category = str(item.get("category") or "grammar").strip().lower()
            if category not in IssueCategory.all_values():
                category = IssueCategory.GRAMMAR.value
            findings.append(
                {
                    "offset": offset,
                    "length": len(quoted),
                    "message": message,
                    "category": category,
                    "suggestions": item.get("suggestions") or [],
                    "confidence": _confidence(item.get("confidence")),
                }
            )
        return findings


def _confidence(value: Any) -> float:
    """Models sometimes answer with words such as "high"; fall back to the default."""

    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE


def _issue_items(response: Any) -> list[dict]:
    if isinstance(response, dict):
        response = response.get("issues", [])
    if not isinstance(response, list):
        raise LLMParseError(
            "LLM proofreader response is not a list of issues",
            response_text=repr(response),
        )
    return [item for item in response if isinstance(item, dict)]
