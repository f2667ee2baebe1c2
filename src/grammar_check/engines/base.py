from __future__ import annotations

from typing import Any, Protocol, Sequence

from src.models import IssueCategory

# Engine families used for per-call toggles (``CheckOptions.engines``)
ENGINE_FAMILIES = ("grammar", "spelling", "style", "llm")


class CheckerEngine(Protocol):
    """Shared contract for every analysis engine.

    ``check`` returns the engine's native result list; the normalizer turns
    each item into an :class:`~src.models.Issue`. ``languages`` lists the
    language codes (or prefixes such as ``"en"``) the engine supports; an
    empty tuple means any language.
    """

    name: str
    family: str
    categories: frozenset[IssueCategory]
    languages: tuple[str, ...]

    async def check(self, text: str) -> Sequence[Any]:
        """Analyse ``text`` and return raw findings."""
        ...


def supports_language(engine: CheckerEngine, language: str | None) -> bool:
    """Return True when ``engine`` declares support for ``language``.

    ``en-GB`` matches both an exact ``en-GB`` entry and an ``en`` prefix.
    """

    if not language or not engine.languages:
        return True
    wanted = language.lower()
    base = wanted.split("-")[0]
    for declared in engine.languages:
        declared = declared.lower()
        if declared in (wanted, base):
            return True
    return False
