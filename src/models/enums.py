"""Enumerations shared by the checking core and the feedback subsystem.

Values are lower-case strings so they serialise cleanly into JSON reports
and cache keys.
"""

from __future__ import annotations

from enum import Enum


class IssueCategory(str, Enum):
    """Categories an engine may declare and an issue may carry."""

    GRAMMAR = "grammar"
    SPELLING = "spelling"
    STYLE = "style"
    PUNCTUATION = "punctuation"
    CLARITY = "clarity"

    @classmethod
    def all_values(cls) -> list[str]:
        return [m.value for m in cls]


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"
    INFO = "info"

    @classmethod
    def all_values(cls) -> list[str]:
        return [m.value for m in cls]


class HealthStatus(str, Enum):
    """Per-engine health classification, ordered from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"

    @property
    def rank(self) -> int:
        return _HEALTH_RANK[self]


_HEALTH_RANK = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.FAILING: 2,
}


class LoadState(str, Enum):
    """States of the analysis module loader."""

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class FeedbackAction(str, Enum):
    """User actions captured by the editor for a reported issue."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"
    IGNORED = "ignored"

    @classmethod
    def all_values(cls) -> list[str]:
        return [m.value for m in cls]
