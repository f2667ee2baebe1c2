"""Heuristic style and clarity checks plus a readability summary."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from src.models import IssueCategory, Severity

LONG_SENTENCE_WORDS = 25

PASSIVE_PATTERNS = (
    re.compile(r"\b(?:was|were|is|are|been|being)\s+\w+ed\b", re.IGNORECASE),
    re.compile(r"\b(?:was|were|is|are|been|being)\s+\w+en\b", re.IGNORECASE),
)

REDUNDANT_PHRASES = {
    "very unique": "unique",
    "completely unique": "unique",
    "most unique": "unique",
    "free gift": "gift",
    "end result": "result",
    "final outcome": "outcome",
    "past history": "history",
    "advance planning": "planning",
    "future plans": "plans",
    "in my opinion, I think": "I think",
    "I personally believe": "I believe",
}

WEAK_WORDS = (
    "really",
    "very",
    "quite",
    "rather",
    "somewhat",
    "pretty much",
    "sort of",
    "kind of",
    "a bit",
    "a little",
    "fairly",
)

_SENTENCE_RE = re.compile(r"[^.!?]+")


@dataclass(frozen=True)
class StyleFinding:
    rule_id: str
    span: tuple[int, int]
    message: str
    short_message: str
    category: IssueCategory = IssueCategory.STYLE
    severity: Severity = Severity.INFO
    confidence: float = 0.6
    suggestions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReadabilityReport:
    sentences: int
    words: int
    avg_words_per_sentence: float
    avg_syllables_per_word: float
    flesch_reading_ease: float


class StyleEngine:
    name = "style"
    family = "style"
    categories = frozenset({IssueCategory.STYLE, IssueCategory.CLARITY})
    languages = ("en",)

    def __init__(self, *, long_sentence_words: int = LONG_SENTENCE_WORDS) -> None:
        self._long_sentence_words = long_sentence_words
        self._redundant = [
            (re.compile(re.escape(phrase), re.IGNORECASE), phrase, replacement)
            for phrase, replacement in REDUNDANT_PHRASES.items()
        ]
        self._weak = [
            (re.compile(rf"\b{re.escape(phrase)}\b", re.IGNORECASE), phrase)
            for phrase in WEAK_WORDS
        ]

    async def check(self, text: str) -> list[StyleFinding]:
        findings: list[StyleFinding] = []

        for pattern in PASSIVE_PATTERNS:
            for match in pattern.finditer(text):
                findings.append(
                    StyleFinding(
                        rule_id="PASSIVE_VOICE",
                        span=match.span(),
                        message="Consider using active voice instead of passive voice",
                        short_message="Passive Voice",
                        confidence=0.55,
                    )
                )

        for pattern, phrase, replacement in self._redundant:
            for match in pattern.finditer(text):
                findings.append(
                    StyleFinding(
                        rule_id="REDUNDANT_PHRASE",
                        span=match.span(),
                        message=f'"{phrase}" is redundant - consider using "{replacement}"',
                        short_message="Redundancy",
                        confidence=0.7,
                        suggestions=(replacement,),
                    )
                )

        for pattern, phrase in self._weak:
            for match in pattern.finditer(text):
                findings.append(
                    StyleFinding(
                        rule_id="WEAK_WORD",
                        span=match.span(),
                        message=f'"{phrase}" is a weak modifier - consider removing or using a stronger word',
                        short_message="Weak Word",
                        confidence=0.4,
                    )
                )

        for match in _SENTENCE_RE.finditer(text):
            sentence = match.group(0)
            stripped = sentence.strip()
            if not stripped:
                continue
            word_count = len(stripped.split())
            if word_count > self._long_sentence_words:
                start = match.start() + (len(sentence) - len(sentence.lstrip()))
                findings.append(
                    StyleFinding(
                        rule_id="LONG_SENTENCE",
                        span=(start, start + len(stripped)),
                        message=f"This sentence is {word_count} words long - consider breaking it into shorter sentences",
                        short_message="Long Sentence",
                        category=IssueCategory.CLARITY,
                        confidence=0.6,
                    )
                )

        return findings


def analyze_readability(text: str) -> ReadabilityReport:
    """Return Flesch reading-ease metrics for ``text`` (clamped to 0..100)."""

    sentences = [s for s in _SENTENCE_RE.findall(text) if s.strip()]
    words = text.split()
    avg_words = len(words) / max(len(sentences), 1)
    avg_syllables = (
        sum(count_syllables(word) for word in words) / len(words) if words else 0.0
    )
    score = 206.835 - (1.015 * avg_words) - (84.6 * avg_syllables)
    return ReadabilityReport(
        sentences=len(sentences),
        words=len(words),
        avg_words_per_sentence=avg_words,
        avg_syllables_per_word=avg_syllables,
        flesch_reading_ease=max(0.0, min(100.0, score)),
    )


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if len(word) <= 3:
        return 1
    # Silent endings
    word = re.sub(r"(?:[^laeiouy]es|ed|[^laeiouy]e)$", "", word)
    word = re.sub(r"^y", "", word)
    groups = re.findall(r"[aeiouy]{1,2}", word)
    return max(1, len(groups))
