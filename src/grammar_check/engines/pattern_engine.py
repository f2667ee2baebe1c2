"""Lightweight regex grammar rules.

This engine needs no external service, so grammar checking keeps working
while the LanguageTool module is loading or has failed to load.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from src.models import IssueCategory, Severity

_VOWEL_SOUND_EXCEPTIONS = ("hour", "honest", "honour", "heir")
_CONSONANT_SOUND_EXCEPTIONS = ("uni", "use", "user", "usu", "eu", "one", "once")

_AGREEMENT_FIXES = {"is": "are", "was": "were", "has": "have", "does": "do"}


@dataclass(frozen=True)
class PatternRule:
    rule_id: str
    pattern: re.Pattern[str]
    message: str
    category: IssueCategory
    severity: Severity
    confidence: float
    # Maps a match to (start, end, replacements); None skips the match
    resolve: Callable[[re.Match[str]], tuple[int, int, list[str]] | None]


def _agreement(match: re.Match[str]) -> tuple[int, int, list[str]] | None:
    verb = match.group("verb")
    fix = _AGREEMENT_FIXES[verb.lower()]
    if verb[0].isupper():
        fix = fix.capitalize()
    return match.start("noun"), match.end("verb"), [fix]


def _article(match: re.Match[str]) -> tuple[int, int, list[str]] | None:
    article = match.group("article")
    word = match.group("word").lower()
    starts_with_vowel = word[0] in "aeiou"
    if word.startswith(_VOWEL_SOUND_EXCEPTIONS):
        starts_with_vowel = True
    elif word.startswith(_CONSONANT_SOUND_EXCEPTIONS):
        starts_with_vowel = False
    if article.lower() == "a" and starts_with_vowel:
        wanted = "an"
    elif article.lower() == "an" and not starts_with_vowel:
        wanted = "a"
    else:
        return None
    if article[0].isupper():
        wanted = wanted.capitalize()
    return match.start("article"), match.end("article"), [wanted]


def _repeated(match: re.Match[str]) -> tuple[int, int, list[str]] | None:
    return match.start(), match.end(), [match.group("word")]


def _could_of(match: re.Match[str]) -> tuple[int, int, list[str]] | None:
    return match.start("of"), match.end("of"), ["have"]


def _space_before_punctuation(match: re.Match[str]) -> tuple[int, int, list[str]] | None:
    return match.start(), match.end(), [match.group("mark")]


DEFAULT_PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        rule_id="SUBJECT_VERB_AGREEMENT",
        pattern=re.compile(
            r"\b(?:the|these|those|many|several|some|two|three|four|five)\s+"
            r"(?P<noun>[a-z]+[^siu\W]s)\s+(?P<verb>is|was|has|does)\b",
            re.IGNORECASE,
        ),
        message="The plural subject does not agree with the singular verb.",
        category=IssueCategory.GRAMMAR,
        severity=Severity.ERROR,
        confidence=0.85,
        resolve=_agreement,
    ),
    PatternRule(
        rule_id="INDEFINITE_ARTICLE",
        pattern=re.compile(r"\b(?P<article>an?)\s+(?P<word>[a-z]+)\b", re.IGNORECASE),
        message="Use the article that matches the sound of the following word.",
        category=IssueCategory.GRAMMAR,
        severity=Severity.WARNING,
        confidence=0.7,
        resolve=_article,
    ),
    PatternRule(
        rule_id="REPEATED_WORD",
        pattern=re.compile(r"\b(?P<word>[a-z]+)\s+(?P=word)\b", re.IGNORECASE),
        message="This word is repeated.",
        category=IssueCategory.GRAMMAR,
        severity=Severity.WARNING,
        confidence=0.8,
        resolve=_repeated,
    ),
    PatternRule(
        rule_id="COULD_OF",
        pattern=re.compile(r"\b(?:could|should|would|must|might)\s+(?P<of>of)\b", re.IGNORECASE),
        message="Did you mean 'have'?",
        category=IssueCategory.GRAMMAR,
        severity=Severity.ERROR,
        confidence=0.9,
        resolve=_could_of,
    ),
    PatternRule(
        rule_id="SPACE_BEFORE_PUNCTUATION",
        pattern=re.compile(r"(?<=\w)[ \t]+(?P<mark>[,.;:!?])"),
        message="Remove the space before the punctuation mark.",
        category=IssueCategory.PUNCTUATION,
        severity=Severity.WARNING,
        confidence=0.75,
        resolve=_space_before_punctuation,
    ),
)


class PatternGrammarEngine:
    name = "rules"
    family = "grammar"
    categories = frozenset({IssueCategory.GRAMMAR, IssueCategory.PUNCTUATION})
    languages = ("en",)

    def __init__(self, rules: tuple[PatternRule, ...] = DEFAULT_PATTERN_RULES) -> None:
        self._rules = rules

    async def check(self, text: str) -> list[dict]:
        findings: list[dict] = []
        for rule in self._rules:
            for match in rule.pattern.finditer(text):
                resolved = rule.resolve(match)
                if resolved is None:
                    continue
                start, end, replacements = resolved
                findings.append(
                    {
                        "start": start,
                        "end": end,
                        "message": rule.message,
                        "short_message": rule.rule_id.replace("_", " ").title(),
                        "category": rule.category.value,
                        "severity": rule.severity.value,
                        "confidence": rule.confidence,
                        "replacements": [{"value": value} for value in replacements],
                    }
                )
        return findings
