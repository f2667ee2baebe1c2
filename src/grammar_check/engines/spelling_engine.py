"""Dictionary spelling engine backed by symspellpy.

The bundled English frequency dictionary is loaded lazily on the first check
(in a worker thread) and reused afterwards.
"""

from __future__ import annotations

import asyncio
import importlib.resources
import logging
import re
from typing import Iterable

from symspellpy import SymSpell, Verbosity

from src.models import IssueCategory

from ..language_check_config import DEFAULT_IGNORED_WORDS

LOGGER = logging.getLogger(__name__)

DICTIONARY_RESOURCE = "frequency_dictionary_en_82_765.txt"
MAX_EDIT_DISTANCE = 2
MAX_SUGGESTIONS = 5

_WORD_RE = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)*")


def load_default_symspell() -> SymSpell:
    """Build a SymSpell instance from the dictionary shipped with symspellpy."""

    sym_spell = SymSpell(max_dictionary_edit_distance=MAX_EDIT_DISTANCE, prefix_length=7)
    dictionary_path = importlib.resources.files("symspellpy") / DICTIONARY_RESOURCE
    if not sym_spell.load_dictionary(str(dictionary_path), term_index=0, count_index=1):
        raise FileNotFoundError(f"SymSpell dictionary not found: {dictionary_path}")
    LOGGER.info("Loaded %d dictionary words for spelling checks", len(sym_spell.words))
    return sym_spell


class SpellingEngine:
    name = "spelling"
    family = "spelling"
    categories = frozenset({IssueCategory.SPELLING})
    languages = ("en",)

    def __init__(
        self,
        sym_spell: SymSpell | None = None,
        *,
        ignored_words: Iterable[str] | None = None,
    ) -> None:
        self._sym_spell = sym_spell
        self._ignored_words = set(
            DEFAULT_IGNORED_WORDS if ignored_words is None else ignored_words
        )
        self._load_lock = asyncio.Lock()

    @classmethod
    def from_words(cls, words: Iterable[str], **kwargs) -> "SpellingEngine":
        """Build an engine over a small in-memory vocabulary."""

        sym_spell = SymSpell(max_dictionary_edit_distance=MAX_EDIT_DISTANCE, prefix_length=7)
        for word in words:
            sym_spell.create_dictionary_entry(word.lower(), 1)
        return cls(sym_spell, **kwargs)

    def add_words(self, words: Iterable[str]) -> None:
        """Register extra words that should never be flagged."""

        self._ignored_words.update(w for w in words if w)

    async def _ensure_loaded(self) -> SymSpell:
        if self._sym_spell is not None:
            return self._sym_spell
        async with self._load_lock:
            if self._sym_spell is None:
                self._sym_spell = await asyncio.to_thread(load_default_symspell)
        return self._sym_spell

    def _is_known(self, sym_spell: SymSpell, token: str) -> bool:
        if token in self._ignored_words or token.lower() in self._ignored_words:
            return True
        # Acronyms and single letters are not dictionary words
        if len(token) == 1 or token.isupper():
            return True
        if "'" in token:
            return True
        return token.lower() in sym_spell.words

    async def check(self, text: str) -> list[dict]:
        sym_spell = await self._ensure_loaded()
        findings: list[dict] = []
        for match in _WORD_RE.finditer(text):
            token = match.group(0)
            if self._is_known(sym_spell, token):
                continue
            suggestions = sym_spell.lookup(
                token.lower(), Verbosity.CLOSEST, max_edit_distance=MAX_EDIT_DISTANCE
            )
            candidates = [_match_case(token, item.term) for item in suggestions[:MAX_SUGGESTIONS]]
            findings.append(
                {
                    "index": match.start(),
                    "token": token,
                    "candidates": candidates,
                    "message": f"Possible spelling mistake: '{token}'",
                }
            )
        return findings


def _match_case(original: str, suggestion: str) -> str:
    if original[:1].isupper():
        return suggestion[:1].upper() + suggestion[1:]
    return suggestion
