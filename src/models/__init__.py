"""Public model exports for the project.

Tests and other modules should import
``from src.models import Issue, IssueCategory``.
"""

from __future__ import annotations

from .check_result import (
    CheckOptions,
    CheckResult,
    CheckStatistics,
    EngineHealthRecord,
    HealthReport,
    ModuleLoadStatus,
)
from .enums import FeedbackAction, HealthStatus, IssueCategory, LoadState, Severity
from .issue import Issue, IssueContext, make_issue_id

__all__ = [
    "CheckOptions",
    "CheckResult",
    "CheckStatistics",
    "EngineHealthRecord",
    "FeedbackAction",
    "HealthReport",
    "HealthStatus",
    "Issue",
    "IssueCategory",
    "IssueContext",
    "LoadState",
    "ModuleLoadStatus",
    "Severity",
    "make_issue_id",
]
