"""Data model for user feedback and the rules learned from it."""

from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass, field
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models import FeedbackAction, Issue, IssueCategory


def pattern_signature(source_engine: str, flagged_text: str, message: str) -> str:
    """Return a stable key grouping feedback about the same kind of issue."""

    normalised_text = " ".join(flagged_text.lower().split())
    normalised_message = " ".join(message.lower().split())[:60]
    digest = hashlib.sha1(
        f"{source_engine}|{normalised_text}|{normalised_message}".encode("utf-8")
    ).hexdigest()
    return digest[:16]


def compile_trigger(text: str) -> re.Pattern[str]:
    """Case-insensitive whole-token pattern for a literal span of text."""

    return re.compile(r"(?<!\w)" + re.escape(text.strip()) + r"(?!\w)", re.IGNORECASE)


class FeedbackContext(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = ""
    user_id: str | None = None
    timestamp: float = Field(default_factory=time.time)
    correction: str | None = None
    domain: str | None = None


class FeedbackEvent(BaseModel):
    """What a user did with one reported issue."""

    model_config = ConfigDict(extra="forbid")

    issue: Issue
    action: FeedbackAction
    context: FeedbackContext = Field(default_factory=FeedbackContext)

    @field_validator("action", mode="before")
    def _normalise_action(cls, value: object) -> str:
        return str(getattr(value, "value", value)).strip().lower()

    @property
    def flagged_text(self) -> str:
        text = self.context.text
        if self.issue.end <= len(text):
            return text[self.issue.offset : self.issue.end]
        return ""


class FeedbackRecord(BaseModel):
    """Anonymised, persisted form of a :class:`FeedbackEvent`.

    The full text is only kept as a hash; the short flagged span survives so
    patterns can be mined from it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    issue_id: str
    source_engine: str
    category: IssueCategory
    message: str
    confidence: float
    action: FeedbackAction
    flagged_text: str = ""
    correction: str | None = None
    text_hash: str = ""
    domain: str | None = None
    timestamp: float = 0.0
    pattern: str = ""


@dataclass
class PatternCandidate:
    """Feedback grouped by pattern signature."""

    pattern: str
    source_engine: str
    category: IssueCategory
    flagged_text: str
    message: str
    count: int = 0
    total_confidence: float = 0.0
    corrections: List[str] = field(default_factory=list)

    @property
    def average_confidence(self) -> float:
        return self.total_confidence / self.count if self.count else 0.0


@dataclass(frozen=True)
class SuppressionRule:
    """Hides issues from ``source_engine`` whose flagged span matches ``trigger``."""

    rule_id: str
    pattern: str
    source_engine: str
    trigger: str
    message: str
    confidence: float
    feedback_count: int
    created_at: float

    def matches(self, issue: Issue, text: str) -> bool:
        if issue.source_engine != self.source_engine:
            return False
        flagged = text[issue.offset : issue.end]
        return bool(flagged) and compile_trigger(self.trigger).fullmatch(flagged.strip()) is not None


@dataclass(frozen=True)
class DetectionRule:
    """Reports ``trigger`` wherever it appears, suggesting learned corrections."""

    rule_id: str
    pattern: str
    trigger: str
    message: str
    suggestions: tuple[str, ...]
    category: IssueCategory
    confidence: float
    feedback_count: int
    created_at: float

    def find(self, text: str) -> list[tuple[int, int]]:
        return [match.span() for match in compile_trigger(self.trigger).finditer(text)]


@dataclass(frozen=True)
class LabeledSample:
    """Held-out text span with a verdict on whether it is a real error."""

    text: str
    is_error: bool
    pattern: str | None = None


@dataclass(frozen=True)
class ValidationReport:
    rule_id: str
    passed: bool
    false_positive_rate: float
    recall: float | None = None
    reason: str | None = None
