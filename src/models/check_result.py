"""Result, option and status models exposed by the checker facade."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import HealthStatus, IssueCategory, LoadState
from .issue import Issue


class CheckStatistics(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    processing_time_ms: float = 0.0
    per_engine_issue_counts: Dict[str, int] = Field(default_factory=dict)
    text_length: int = 0
    engines_invoked: int = 0
    failed_engines: List[str] = Field(default_factory=list)
    from_cache: bool = False


class CheckResult(BaseModel):
    """Issues for one ``check()`` call. Immutable once returned."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    issues: List[Issue] = Field(default_factory=list)
    statistics: CheckStatistics = Field(default_factory=CheckStatistics)

    @classmethod
    def empty(cls, text_length: int = 0) -> "CheckResult":
        return cls(statistics=CheckStatistics(text_length=text_length))

    def as_cache_hit(self) -> "CheckResult":
        """Return a copy flagged as served from cache with no engine work."""

        stats = self.statistics.model_copy(
            update={"from_cache": True, "engines_invoked": 0, "processing_time_ms": 0.0}
        )
        return self.model_copy(update={"statistics": stats})


class CheckOptions(BaseModel):
    """Recognised per-call options; anything else is rejected.

    ``engines`` maps engine names or engine families (``grammar``,
    ``spelling``, ``style``, ``llm``) to an on/off toggle.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    engines: Dict[str, bool] = Field(default_factory=dict)
    categories: List[IssueCategory] | None = None
    language: str | None = None
    strict_mode: bool = False

    @field_validator("categories", mode="before")
    def _normalise_categories(cls, value: object) -> List[str] | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        return [str(v).strip().lower() for v in value if str(v).strip()]

    @field_validator("language", mode="before")
    def _strip_language(cls, value: object) -> str | None:
        if value is None:
            return None
        return str(value).strip() or None

    def effective(self, default_language: str) -> dict[str, Any]:
        """Return the option values that influence a check result."""

        categories = (
            sorted(c.value for c in self.categories) if self.categories is not None else None
        )
        return {
            "language": self.language or default_language,
            "categories": categories,
            "strict_mode": self.strict_mode,
            "engines": dict(sorted(self.engines.items())),
        }


class EngineHealthRecord(BaseModel):
    engine_name: str
    consecutive_failures: int = 0
    total_successes: int = 0
    total_failures: int = 0
    last_error: str | None = None
    status: HealthStatus = HealthStatus.HEALTHY

    @property
    def total_runs(self) -> int:
        return self.total_successes + self.total_failures

    @property
    def failure_rate(self) -> float:
        if self.total_runs == 0:
            return 0.0
        return self.total_failures / self.total_runs


class HealthReport(BaseModel):
    overall: HealthStatus
    engines: Dict[str, EngineHealthRecord] = Field(default_factory=dict)
    critical_failures: int = 0
    critical_issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    timestamp: float


class ModuleLoadStatus(BaseModel):
    state: LoadState = LoadState.IDLE
    attempts: int = 0
    last_error: str | None = None
    strategy: str | None = None
    attempted: List[str] = Field(default_factory=list)
