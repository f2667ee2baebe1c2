"""Canonical issue model produced by the normalizer.

Every engine reports problems in its own shape; by the time an issue reaches
a caller it has been converted into this model. Instances are frozen so that
cached results can be handed out repeatedly without defensive copies.
"""

from __future__ import annotations

import hashlib
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import IssueCategory, Severity


def make_issue_id(source_engine: str, offset: int, length: int, message: str) -> str:
    """Return a stable identifier for an issue.

    The id only depends on the issue content so that two checks of the same
    text yield content-equal issue lists.
    """

    digest = hashlib.sha1(
        f"{source_engine}|{offset}|{length}|{message}".encode("utf-8")
    ).hexdigest()
    return f"{source_engine}-{digest[:12]}"


class IssueContext(BaseModel):
    """Snippet of the checked text surrounding an issue."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    snippet: str = ""
    snippet_offset: int = Field(default=0, ge=0)


class Issue(BaseModel):
    """A single detected problem with a span, category and candidate fixes.

    - offset/length: character span in the checked text
    - suggestions: candidate replacements, best first
    - confidence: 0..1, used to arbitrate overlapping issues
    - priority: higher values sort first in the final result
    - source_engine: name of the engine that reported the issue
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = ""
    category: IssueCategory
    severity: Severity
    message: str
    short_message: str = ""
    offset: int = Field(ge=0)
    length: int = Field(ge=0)
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    priority: float = 0
    source_engine: str
    context: IssueContext = Field(default_factory=IssueContext)

    @field_validator("message", "short_message", "source_engine", mode="before")
    def _strip_strings(cls, value: object) -> str:
        return str(value or "").strip()

    @field_validator("suggestions", mode="before")
    def _normalise_suggestions(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(x).strip() for x in value if str(x).strip()]
        # allow a single suggestion as a bare string
        text = str(value).strip()
        return [text] if text else []

    @field_validator("confidence", mode="before")
    def _coerce_confidence(cls, value: Any) -> float:
        if value is None:
            return 0.5
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError("confidence must be a number between 0 and 1")

    @model_validator(mode="before")
    @classmethod
    def _derive_id(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("id"):
            return data
        try:
            offset = int(data.get("offset", 0))
            length = int(data.get("length", 0))
        except (TypeError, ValueError):
            # Field validation reports the bad span
            return data
        derived = dict(data)
        derived["id"] = make_issue_id(
            str(data.get("source_engine") or "").strip(),
            offset,
            length,
            str(data.get("message") or "").strip(),
        )
        return derived

    @model_validator(mode="after")
    def final_checks(self) -> "Issue":
        if not self.message:
            raise ValueError("message must not be empty")
        if not self.source_engine:
            raise ValueError("source_engine must not be empty")
        return self

    @property
    def end(self) -> int:
        return self.offset + self.length

    def overlaps(self, other: "Issue") -> bool:
        """Return True when the two spans share at least one character."""

        return max(self.offset, other.offset) < min(self.end, other.end)
