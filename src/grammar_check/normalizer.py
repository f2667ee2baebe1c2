"""Convert heterogeneous engine results into :class:`Issue` objects.

Engines report problems in whatever shape is natural for them:

- LanguageTool ``Match`` objects (``offset``, ``errorLength``, ``replacements``,
  ``ruleIssueType``)
- mappings with ``offset``/``length``, ``start``/``end`` or ``index``/``token``
- objects carrying a ``span`` tuple (style findings)
- ready-made :class:`Issue` instances

Suggestions may be a bare string, a list of strings or a list of
``{"value": ...}`` mappings. Spans are clamped into the checked text.
Anything else raises :class:`NormalizationError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from src.models import Issue, IssueCategory, IssueContext, Severity

from .errors import NormalizationError
from .language_check_config import ISSUE_TYPE_CATEGORIES, RULE_CATEGORY_CATEGORIES

LOGGER = logging.getLogger(__name__)

CONTEXT_RADIUS = 20
MAX_SUGGESTIONS = 5


@dataclass(frozen=True)
class CategoryDefaults:
    severity: Severity
    priority: float
    confidence: float


# Applied where an engine does not say otherwise
CATEGORY_DEFAULTS: dict[IssueCategory, CategoryDefaults] = {
    IssueCategory.SPELLING: CategoryDefaults(Severity.ERROR, 9, 0.8),
    IssueCategory.GRAMMAR: CategoryDefaults(Severity.ERROR, 8, 0.75),
    IssueCategory.PUNCTUATION: CategoryDefaults(Severity.WARNING, 6, 0.7),
    IssueCategory.CLARITY: CategoryDefaults(Severity.SUGGESTION, 5, 0.6),
    IssueCategory.STYLE: CategoryDefaults(Severity.INFO, 4, 0.6),
}


class IssueNormalizer:
    """Stateless converter from raw engine output to issues."""

    def normalize_all(
        self,
        engine_name: str,
        raw_results: Iterable[Any] | None,
        text: str,
        *,
        default_category: IssueCategory = IssueCategory.GRAMMAR,
    ) -> list[Issue]:
        if raw_results is None:
            return []
        if isinstance(raw_results, (str, bytes, Mapping)):
            raise NormalizationError(
                "engine result must be a list of findings", engine_name=engine_name, raw=raw_results
            )
        return [
            self.normalize(engine_name, raw, text, default_category=default_category)
            for raw in raw_results
        ]

    def normalize(
        self,
        engine_name: str,
        raw: Any,
        text: str,
        *,
        default_category: IssueCategory = IssueCategory.GRAMMAR,
    ) -> Issue:
        if isinstance(raw, Issue):
            start, end = _clamp(raw.offset, raw.end, len(text))
            if (start, end) == (raw.offset, raw.end):
                return raw
            return raw.model_copy(
                update={"offset": start, "length": end - start, "context": _context(text, start, end)}
            )

        if isinstance(raw, Mapping):
            fields = self._from_mapping(engine_name, raw, default_category)
        elif hasattr(raw, "ruleId") and hasattr(raw, "offset"):
            fields = self._from_match(raw)
        elif hasattr(raw, "span"):
            fields = self._from_span_object(engine_name, raw, default_category)
        else:
            raise NormalizationError(
                f"unrecognised result type {type(raw).__name__}", engine_name=engine_name, raw=raw
            )

        return self._build(engine_name, fields, text, raw)

    # --- shape readers -------------------------------------------------

    def _from_match(self, match: Any) -> dict[str, Any]:
        issue_type = str(getattr(match, "ruleIssueType", "") or "").lower()
        category = ISSUE_TYPE_CATEGORIES.get(issue_type)
        if category is None:
            rule_category = str(getattr(match, "category", "") or "").upper()
            category = RULE_CATEGORY_CATEGORIES.get(rule_category, IssueCategory.GRAMMAR)
        offset = _as_int(getattr(match, "offset", None))
        length = _as_int(getattr(match, "errorLength", None))
        return {
            "start": offset,
            "end": None if offset is None or length is None else offset + length,
            "message": getattr(match, "message", ""),
            "short_message": getattr(match, "shortMessage", "") or getattr(match, "ruleId", ""),
            "category": category,
            "suggestions": getattr(match, "replacements", None),
        }

    def _from_mapping(
        self, engine_name: str, raw: Mapping[str, Any], default_category: IssueCategory
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if "offset" in raw:
            start = _as_int(raw.get("offset"))
            length = _as_int(raw.get("length", raw.get("errorLength")))
            fields["start"] = start
            fields["end"] = None if start is None or length is None else start + length
        elif "start" in raw and "end" in raw:
            fields["start"] = _as_int(raw.get("start"))
            fields["end"] = _as_int(raw.get("end"))
        elif "index" in raw and "token" in raw:
            start = _as_int(raw.get("index"))
            token = str(raw.get("token") or "")
            fields["start"] = start
            fields["end"] = None if start is None else start + len(token)
            fields.setdefault("message", f"Possible spelling mistake: '{token}'")
            default_category = IssueCategory.SPELLING
        else:
            raise NormalizationError("result has no recognisable span", engine_name=engine_name, raw=raw)

        if raw.get("message"):
            fields["message"] = raw["message"]
        fields["short_message"] = raw.get("short_message") or raw.get("shortMessage") or ""
        fields["category"] = raw.get("category") or default_category
        fields["severity"] = raw.get("severity")
        fields["confidence"] = raw.get("confidence")
        fields["priority"] = raw.get("priority")
        for key in ("suggestions", "replacements", "candidates"):
            if key in raw:
                fields["suggestions"] = raw[key]
                break
        return fields

    def _from_span_object(
        self, engine_name: str, raw: Any, default_category: IssueCategory
    ) -> dict[str, Any]:
        span = getattr(raw, "span")
        try:
            start, end = span
        except (TypeError, ValueError) as exc:
            raise NormalizationError("span must be a (start, end) pair", engine_name=engine_name, raw=raw) from exc
        return {
            "start": _as_int(start),
            "end": _as_int(end),
            "message": getattr(raw, "message", ""),
            "short_message": getattr(raw, "short_message", "") or getattr(raw, "rule_id", ""),
            "category": getattr(raw, "category", None) or default_category,
            "severity": getattr(raw, "severity", None),
            "confidence": getattr(raw, "confidence", None),
            "priority": getattr(raw, "priority", None),
            "suggestions": getattr(raw, "suggestions", None),
        }

    # --- assembly --------------------------------------------------------

    def _build(self, engine_name: str, fields: dict[str, Any], text: str, raw: Any) -> Issue:
        if fields.get("start") is None or fields.get("end") is None:
            raise NormalizationError("result span is missing or not numeric", engine_name=engine_name, raw=raw)
        message = str(fields.get("message") or "").strip()
        if not message:
            raise NormalizationError("result has no message", engine_name=engine_name, raw=raw)

        category = _as_category(fields.get("category"), engine_name, raw)
        defaults = CATEGORY_DEFAULTS[category]
        severity = _as_severity(fields.get("severity")) or defaults.severity
        try:
            confidence = _as_float(fields.get("confidence"), defaults.confidence)
            priority = _as_float(fields.get("priority"), defaults.priority)
        except (TypeError, ValueError) as exc:
            raise NormalizationError(
                "confidence and priority must be numeric", engine_name=engine_name, raw=raw
            ) from exc

        start, end = _clamp(fields["start"], fields["end"], len(text))
        return Issue(
            category=category,
            severity=severity,
            message=message,
            short_message=fields.get("short_message") or "",
            offset=start,
            length=end - start,
            suggestions=parse_suggestions(fields.get("suggestions")),
            confidence=min(1.0, max(0.0, confidence)),
            priority=priority,
            source_engine=engine_name,
            context=_context(text, start, end),
        )


def parse_suggestions(value: Any) -> list[str]:
    """Return up to five unique suggestion strings, best first."""

    if value is None:
        return []
    if isinstance(value, str):
        items: Sequence[Any] = [value]
    else:
        items = list(value)
    suggestions: list[str] = []
    for item in items:
        if isinstance(item, Mapping):
            item = item.get("value")
        if item is None:
            continue
        cleaned = str(item).strip()
        if cleaned and cleaned not in suggestions:
            suggestions.append(cleaned)
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
    return suggestions


def deduplicate(issues: Iterable[Issue]) -> list[Issue]:
    """Collapse duplicates, then resolve overlapping spans.

    Issues sharing ``(offset, length, message)`` are merged (suggestions
    combined, highest confidence kept). Among overlapping issues the one
    with strictly higher confidence wins; on a tie the issue seen first
    (engine registration order) is kept.
    """

    merged: dict[tuple[int, int, str], Issue] = {}
    for issue in issues:
        key = (issue.offset, issue.length, issue.message)
        existing = merged.get(key)
        if existing is None:
            merged[key] = issue
            continue
        suggestions = parse_suggestions(existing.suggestions + issue.suggestions)
        merged[key] = existing.model_copy(
            update={
                "suggestions": suggestions,
                "confidence": max(existing.confidence, issue.confidence),
            }
        )

    kept: list[Issue] = []
    for issue in merged.values():
        overlapping = [k for k in kept if k.overlaps(issue)]
        if not overlapping:
            kept.append(issue)
            continue
        if all(issue.confidence > k.confidence for k in overlapping):
            kept = [k for k in kept if k not in overlapping]
            kept.append(issue)
    return kept


def sort_issues(issues: Iterable[Issue]) -> list[Issue]:
    """Stable sort: priority descending, then offset ascending."""

    return sorted(issues, key=lambda issue: (-issue.priority, issue.offset))


def _clamp(start: int, end: int, text_length: int) -> tuple[int, int]:
    start = max(0, min(start, text_length))
    end = max(start, min(end, text_length))
    return start, end


def _context(text: str, start: int, end: int) -> IssueContext:
    snippet_start = max(0, start - CONTEXT_RADIUS)
    snippet_end = min(len(text), end + CONTEXT_RADIUS)
    return IssueContext(snippet=text[snippet_start:snippet_end], snippet_offset=start - snippet_start)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any, default: float) -> float:
    if value is None:
        return float(default)
    return float(value)


def _as_category(value: Any, engine_name: str, raw: Any) -> IssueCategory:
    if isinstance(value, IssueCategory):
        return value
    try:
        return IssueCategory(str(value).strip().lower())
    except ValueError as exc:
        raise NormalizationError(
            f"unknown issue category {value!r}", engine_name=engine_name, raw=raw
        ) from exc


def _as_severity(value: Any) -> Severity | None:
    if value is None or value == "":
        return None
    if isinstance(value, Severity):
        return value
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        LOGGER.debug("Ignoring unknown severity %r", value)
        return None
